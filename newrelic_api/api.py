"""NewRelic REST API v2 endpoints"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from config import Config
from logging_config import get_logger
from .client import NewRelicClient
from .errors import RateLimitedError
from .models import (
    Application,
    ApplicationPage,
    MetricData,
    MetricDataPage,
    MetricName,
    MetricNamePage,
    decode_pages,
)


logger = get_logger(__name__)


def format_timestamp(moment: datetime) -> str:
    """Format a timestamp as RFC 3339 in UTC"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(microsecond=0).isoformat()


class NewRelicAPI:
    """Typed access to the application, metric name and metric data endpoints"""

    def __init__(self, client: NewRelicClient, service: str = "applications", period: int = 60):
        if not service:
            raise ValueError("Cannot continue without NewRelic service selected")
        self.client = client
        self.service = service
        self.period = period

    @classmethod
    def from_config(cls, config: Config, client: Optional[NewRelicClient] = None) -> "NewRelicAPI":
        return cls(client or NewRelicClient.from_config(config), service=config.service, period=config.period)

    def get_applications(self) -> List[Application]:
        """Fetch the application inventory, all pages concatenated.

        Raises RateLimitedError when a 429 cut the listing short, so a
        partial inventory is never mistaken for a complete one.
        """
        logger.info("Requesting application list", api_server=self.client.api_server)

        body = self._complete_pages(f"/v2/{self.service}.json")
        applications = [app for page in decode_pages(body, ApplicationPage) for app in page.applications]

        logger.debug("Found applications", count=len(applications))
        return applications

    def get_metric_names(self, app_id: int, name_filter: Optional[str] = None) -> List[MetricName]:
        """Fetch the metric names of an application, optionally filtered by name.

        Raises RateLimitedError when a 429 cut the catalog short.
        """
        params = [("name", name_filter)] if name_filter else []

        body = self._complete_pages(f"/v2/{self.service}/{app_id}/metrics.json", params)
        names = [name for page in decode_pages(body, MetricNamePage) for name in page.metrics]

        logger.debug("Found possible metric names", app_id=app_id, name_filter=name_filter, count=len(names))
        return names

    def get_metric_data(self, app_id: int, names: Iterable[str], value_names: Iterable[str],
                        start: datetime, end: datetime) -> List[MetricData]:
        """Fetch summarized metric data for one batch of metric names"""
        params = [("names[]", name) for name in names]
        params.extend(("values[]", value) for value in value_names)
        params.extend([
            ("raw", "true"),
            ("summarize", "true"),
            ("period", str(self.period)),
            ("from", format_timestamp(start)),
            ("to", format_timestamp(end)),
        ])

        # Throttled data is served as-is; the next cycle asks again
        body = self.client.request(f"/v2/{self.service}/{app_id}/metrics/data.json", params)
        return [data for page in decode_pages(body, MetricDataPage) for data in page.metric_data.metrics]

    def _complete_pages(self, path: str, params=None) -> bytes:
        pages = self.client.get_pages(path, params)
        if pages.throttled:
            raise RateLimitedError(f"Rate limited while reading {path}", path=path)
        return pages.body
