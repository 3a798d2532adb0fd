"""Prometheus collector exposing NewRelic data"""
import threading
from datetime import datetime
from typing import Callable, Iterable, Optional, Tuple

from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from config import Config
from logging_config import get_logger
from metrics.registry import MetricsRegistry
from newrelic_api.api import NewRelicAPI
from .gather import Gather
from .scraper import Scraper, scrape_window


logger = get_logger(__name__)


class NewRelicCollector(Collector):
    """Runs one scrape per collect and exposes every series seen so far.

    Only one collect runs at a time; concurrent requests wait for the
    in-flight scrape to finish.
    """

    def __init__(self, scraper: Scraper, registry: Optional[MetricsRegistry] = None,
                 window: Callable[[], Tuple[datetime, datetime]] = scrape_window):
        self.scraper = scraper
        self.registry = registry if registry is not None else MetricsRegistry()
        self.window = window
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config, api: Optional[NewRelicAPI] = None) -> "NewRelicCollector":
        registry = MetricsRegistry()
        scraper = Scraper.from_config(config, api or NewRelicAPI.from_config(config), registry.stats)
        return cls(scraper, registry)

    @property
    def stats(self):
        return self.registry.stats

    def describe(self) -> Iterable[Metric]:
        with self._lock:
            return list(self.registry.describe())

    def collect(self) -> Iterable[Metric]:
        with self._lock:
            self._receive()
            return list(self.registry.collect())

    def _receive(self) -> None:
        """Drain one scrape's samples into the registry"""
        scrape = Gather(self.scraper.scrape, [self.window()], name="scrape")
        received = 0
        for sample in scrape:
            self.registry.observe(sample)
            received += 1

        if scrape.failed:
            self.stats.mark_error()
        logger.debug("Received samples", count=received, series=len(self.registry))
