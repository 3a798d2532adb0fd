"""Registry of dynamically discovered NewRelic metric series"""
import re
import time
from typing import Dict, Iterator, List

from prometheus_client import Counter, Gauge
from prometheus_client.metrics_core import Metric

from logging_config import get_logger
from .models import Sample


logger = get_logger(__name__)

# Namespace for metrics
NAMESPACE = "newrelic"

LABEL_NAMES = ["app", "component"]

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


def sanitize_name(name: str) -> str:
    """Map an upstream value name onto the Prometheus metric name charset"""
    sanitized = _INVALID_CHARS.sub("_", name)
    if not sanitized or sanitized[0].isdigit():
        sanitized = f"_{sanitized}"
    return sanitized


class ScrapeStats:
    """Housekeeping metrics describing the exporter's own scrapes"""

    def __init__(self):
        self.duration = Gauge(
            "exporter_last_scrape_duration_seconds",
            "The last scrape duration.",
            namespace=NAMESPACE,
            registry=None,
        )
        self.total_scrapes = Counter(
            "exporter_scrapes",
            "Total scraped metrics",
            namespace=NAMESPACE,
            registry=None,
        )
        self.error = Gauge(
            "exporter_last_scrape_error",
            "The last scrape error status.",
            namespace=NAMESPACE,
            registry=None,
        )
        self.scrapes = 0
        self.last_error = False
        self.last_duration = 0.0
        self.last_scrape_time = 0.0

    def start_scrape(self) -> None:
        self.error.set(0)
        self.total_scrapes.inc()
        self.scrapes += 1
        self.last_error = False

    def mark_error(self) -> None:
        self.error.set(1)
        self.last_error = True

    def finish_scrape(self, duration: float) -> None:
        self.duration.set(duration)
        self.last_duration = duration
        self.last_scrape_time = time.time()

    @property
    def metrics(self) -> List:
        return [self.duration, self.total_scrapes, self.error]

    def status(self) -> Dict[str, object]:
        return {
            "total_scrapes": self.scrapes,
            "last_scrape_error": self.last_error,
            "last_scrape_duration_seconds": round(self.last_duration, 3),
            "last_scrape_time": self.last_scrape_time or None,
        }


class MetricsRegistry:
    """Growth-only map from metric name to a gauge labeled by app and component.

    Series are created on first observation and kept for the lifetime of the
    process. Callers serialize access; the collector holds its lock around
    every method here.
    """

    def __init__(self):
        self.stats = ScrapeStats()
        self.series: Dict[str, Gauge] = {}

    def observe(self, sample: Sample) -> None:
        """Set the value of a sample, creating its series when first seen"""
        key = f"{NAMESPACE}_{sanitize_name(sample.name)}"
        gauge = self.series.get(key)
        if gauge is None:
            gauge = Gauge(
                sanitize_name(sample.name),
                f"NewRelic metric {sample.name}",
                LABEL_NAMES,
                namespace=NAMESPACE,
                registry=None,
            )
            self.series[key] = gauge
            logger.debug("Registered new metric series", metric=key)
        gauge.labels(*sample.label_values()).set(sample.value)

    def describe(self) -> Iterator[Metric]:
        for gauge in self.series.values():
            yield from gauge.describe()
        for metric in self.stats.metrics:
            yield from metric.describe()

    def collect(self) -> Iterator[Metric]:
        for metric in self.stats.metrics:
            yield from metric.collect()
        for gauge in self.series.values():
            yield from gauge.collect()

    def __len__(self) -> int:
        return len(self.series)
