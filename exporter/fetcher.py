"""Chunked metric data fetching"""
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from config import Config
from logging_config import get_logger
from newrelic_api import CHUNK_SIZE
from newrelic_api.api import NewRelicAPI
from newrelic_api.models import MetricName, MetricSample, to_sample
from .gather import Emit, Gather


logger = get_logger(__name__)


def chunked(items: Sequence, size: int) -> List[Sequence]:
    """Split a sequence into consecutive slices of at most ``size`` items"""
    return [items[i:i + size] for i in range(0, len(items), size)]


class MetricFetcher:
    """Fetches metric data for an application's catalog in fixed-size batches"""

    def __init__(self, api: NewRelicAPI, value_filters: Optional[List[str]] = None,
                 chunk_size: int = CHUNK_SIZE, max_workers: Optional[int] = None):
        self.api = api
        self.value_filters = list(value_filters or [])
        self.chunk_size = chunk_size
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config: Config, api: NewRelicAPI) -> "MetricFetcher":
        return cls(api, value_filters=config.value_filters, max_workers=config.max_workers)

    def value_names(self, catalog: Sequence[MetricName]) -> List[str]:
        """Value names to request: the configured filter, or every value the catalog exposes"""
        if self.value_filters:
            return list(self.value_filters)

        seen = {}
        for metric in catalog:
            for value in metric.values:
                seen.setdefault(value, None)
        return list(seen)

    def fetch(self, app_id: int, catalog: Sequence[MetricName],
              start: datetime, end: datetime) -> Tuple[List[MetricSample], bool]:
        """Fetch one window of data for every family in the catalog.

        Returns the samples of all chunks that succeeded and whether any
        chunk failed.
        """
        names = [metric.name for metric in catalog]
        if not names:
            return [], False

        value_names = self.value_names(catalog)
        chunks = chunked(names, self.chunk_size)
        logger.info("Requesting metrics", app_id=app_id, names=len(names), chunks=len(chunks))

        def fetch_chunk(chunk: Sequence[str], emit: Emit) -> None:
            for data in self.api.get_metric_data(app_id, chunk, value_names, start, end):
                sample = to_sample(data)
                if sample is not None:
                    emit(sample)

        gather = Gather(fetch_chunk, chunks, max_workers=self.max_workers, name=f"data_{app_id}")
        samples = gather.collect()

        if gather.failed:
            logger.error("Metric data fetch incomplete", app_id=app_id, failed_chunks=len(gather.errors))

        logger.info("Scraped metric datas", app_id=app_id, count=len(samples))
        return samples, gather.failed
