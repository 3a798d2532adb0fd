"""Scrape orchestration for the NewRelic exporter"""
from .cache import CatalogCache
from .collector import NewRelicCollector
from .fetcher import MetricFetcher
from .gather import Gather
from .scraper import Scraper, ScrapeState, scrape_window

__all__ = [
    "CatalogCache",
    "Gather",
    "MetricFetcher",
    "NewRelicCollector",
    "ScrapeState",
    "Scraper",
    "scrape_window",
]
