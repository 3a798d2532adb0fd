"""Catalog cache for the application inventory and per-application metric names"""
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, NamedTuple, Optional, TypeVar

from config import Config
from logging_config import get_logger
from newrelic_api.api import NewRelicAPI
from newrelic_api.errors import RateLimitedError
from newrelic_api.models import Application, MetricName
from .gather import Emit, Gather


logger = get_logger(__name__)

SnapshotT = TypeVar("SnapshotT")


@dataclass
class CacheEntry(Generic[SnapshotT]):
    """Last good snapshot and the time of the refresh that produced it"""
    snapshot: SnapshotT
    last_refresh: Optional[float] = None

    def is_due(self, ttl: float, now: float) -> bool:
        return self.last_refresh is None or now - self.last_refresh >= ttl


class Lookup(NamedTuple):
    """Snapshot served from the cache and whether refreshing it failed"""
    value: Any
    failed: bool = False


@dataclass
class CatalogCache:
    """Caches applications and metric names with independent TTLs.

    A refresh that fails keeps the previous snapshot and timestamp, so the
    stale data keeps being served and the next lookup retries. A throttled
    refresh is handled the same way but is not reported as a failure.
    """
    api: NewRelicAPI
    app_list_ttl: float
    metric_names_ttl: float
    static_apps: Optional[List[Application]] = None
    metric_filters: List[str] = field(default_factory=list)
    max_workers: Optional[int] = None
    clock: Callable[[], float] = time.monotonic

    def __post_init__(self):
        self._lock = threading.Lock()
        self._apps: CacheEntry[List[Application]] = CacheEntry(snapshot=[])
        self._names: Dict[int, CacheEntry[List[MetricName]]] = {}

    @classmethod
    def from_config(cls, config: Config, api: NewRelicAPI) -> "CatalogCache":
        static_apps = None
        if config.has_static_apps():
            static_apps = [Application(id=app.id, name=app.name) for app in config.apps]
        return cls(
            api=api,
            app_list_ttl=config.app_list_cache_time,
            metric_names_ttl=config.metric_names_cache_time,
            static_apps=static_apps,
            metric_filters=list(config.metric_filters),
            max_workers=config.max_workers,
        )

    def applications(self) -> Lookup:
        """Return the application list, refreshing it when its TTL has expired"""
        if self.static_apps is not None:
            return Lookup(list(self.static_apps))

        with self._lock:
            entry = self._apps
            due = entry.is_due(self.app_list_ttl, self.clock())

        if not due:
            logger.debug("Applications list taken from cache")
            return Lookup(entry.snapshot)

        try:
            apps = self.api.get_applications()
        except RateLimitedError:
            logger.warning("Application list throttled, keeping cached list", cached=len(entry.snapshot))
            return Lookup(entry.snapshot)
        except Exception as e:
            logger.error("Error getting application list", error=str(e), error_type=type(e).__name__)
            return Lookup(entry.snapshot, failed=True)

        with self._lock:
            self._apps = CacheEntry(snapshot=apps, last_refresh=self.clock())
        logger.debug("Application list updated", count=len(apps))
        return Lookup(apps)

    def metric_names(self, app_id: int) -> Lookup:
        """Return the metric names of an application, refreshing them when due"""
        with self._lock:
            entry = self._names.get(app_id) or CacheEntry(snapshot=[])
            due = entry.is_due(self.metric_names_ttl, self.clock())

        if not due:
            logger.debug("Metric names list taken from cache", app_id=app_id)
            return Lookup(entry.snapshot)

        filters = self.metric_filters or [None]
        logger.info("Requesting metric names", app_id=app_id, filters=len(self.metric_filters))

        def fetch_filter(name_filter: Optional[str], emit: Emit) -> None:
            for name in self.api.get_metric_names(app_id, name_filter):
                emit(name)

        gather = Gather(fetch_filter, filters, max_workers=self.max_workers, name=f"names_{app_id}")
        # Overlapping filters may return the same family more than once
        names = list({name.name: name for name in gather}.values())

        if gather.failed:
            throttled = all(isinstance(error, RateLimitedError) for _, error in gather.errors)
            if throttled:
                logger.warning("Metric names throttled, keeping cached list",
                               app_id=app_id, cached=len(entry.snapshot))
            else:
                logger.error("Metric names refresh failed, keeping cached list",
                             app_id=app_id, failed_filters=len(gather.errors), cached=len(entry.snapshot))
            return Lookup(entry.snapshot, failed=not throttled)

        with self._lock:
            self._names[app_id] = CacheEntry(snapshot=names, last_refresh=self.clock())
        logger.info("Scraped metric names", app_id=app_id, count=len(names))
        return Lookup(names)

    def last_refresh(self, app_id: Optional[int] = None) -> Optional[float]:
        """Time of the last successful refresh of the app list or of an app's names"""
        with self._lock:
            if app_id is None:
                return self._apps.last_refresh
            entry = self._names.get(app_id)
            return entry.last_refresh if entry else None
