"""Scrape cycle orchestration"""
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple

from config import Config
from logging_config import get_logger, log_scrape_completed
from metrics.models import Component, Sample
from metrics.registry import ScrapeStats
from newrelic_api.api import NewRelicAPI
from newrelic_api.models import Application
from .cache import CatalogCache
from .fetcher import MetricFetcher
from .gather import Emit, Gather


logger = get_logger(__name__)

WINDOW = timedelta(minutes=1)


class ScrapeState(Enum):
    IDLE = "idle"
    REFRESHING_CACHES = "refreshing_caches"
    FANNING_OUT = "fanning_out"
    DRAINING = "draining"
    DONE = "done"
    ERROR = "error"


def scrape_window(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return the preceding whole minute, so windows align across cycles"""
    now = now or datetime.now(timezone.utc)
    start = (now - WINDOW).replace(second=0, microsecond=0)
    return start, start + WINDOW


def summary_samples(app: Application):
    """Samples for the summaries bundled with the application list"""
    for name, value in app.application_summary.items():
        yield Sample(app.name, name, value, Component.APPLICATION_SUMMARY.value)
    for name, value in app.end_user_summary.items():
        yield Sample(app.name, name, value, Component.END_USER_SUMMARY.value)


class Scraper:
    """Drives one scrape cycle: cache refresh, per-application fan-out and emission"""

    def __init__(self, cache: CatalogCache, fetcher: MetricFetcher, stats: ScrapeStats,
                 max_workers: Optional[int] = None):
        self.cache = cache
        self.fetcher = fetcher
        self.stats = stats
        self.max_workers = max_workers
        self.state = ScrapeState.IDLE

    @classmethod
    def from_config(cls, config: Config, api: NewRelicAPI, stats: ScrapeStats) -> "Scraper":
        return cls(
            cache=CatalogCache.from_config(config, api),
            fetcher=MetricFetcher.from_config(config, api),
            stats=stats,
            max_workers=config.max_workers,
        )

    def _transition(self, state: ScrapeState) -> None:
        logger.debug("Scrape state changed", previous=self.state.value, state=state.value)
        self.state = state

    def scrape(self, window: Tuple[datetime, datetime], emit: Emit) -> None:
        """Run one cycle for ``window`` and emit every sample it produces.

        Failures never abort the cycle; they raise the error flag and the
        cycle continues with whatever data is available.
        """
        start, end = window
        self.stats.start_scrape()
        started = time.monotonic()
        emitted = 0
        logger.info("Starting new scrape", window_start=start.isoformat(), window_end=end.isoformat())

        try:
            self._transition(ScrapeState.REFRESHING_CACHES)
            apps, failed = self.cache.applications()
            if failed:
                self.stats.mark_error()

            for app in apps:
                for sample in summary_samples(app):
                    emit(sample)
                    emitted += 1

            self._transition(ScrapeState.FANNING_OUT)
            gather = Gather(
                lambda app, app_emit: self._scrape_application(app, start, end, app_emit),
                apps,
                max_workers=self.max_workers,
                name="app_scrape",
            )

            self._transition(ScrapeState.DRAINING)
            for sample in gather:
                emit(sample)
                emitted += 1

            if gather.failed:
                self.stats.mark_error()
        finally:
            duration = time.monotonic() - started
            self.stats.finish_scrape(duration)
            self._transition(ScrapeState.ERROR if self.stats.last_error else ScrapeState.DONE)
            log_scrape_completed(logger, emitted, duration, self.stats.last_error)
            self._transition(ScrapeState.IDLE)

    def _scrape_application(self, app: Application, start: datetime, end: datetime, emit: Emit) -> None:
        names, failed = self.cache.metric_names(app.id)
        if failed:
            self.stats.mark_error()

        samples, failed = self.fetcher.fetch(app.id, names, start, end)
        if failed:
            self.stats.mark_error()

        for sample in samples:
            for value_name, value in sample.values.items():
                emit(Sample(app.name, value_name, value, sample.name))
