"""Tests for scrape cycle orchestration"""
from datetime import datetime, timezone
from unittest.mock import patch

from exporter.scraper import ScrapeState, Scraper, scrape_window, summary_samples
from metrics.models import Sample
from metrics.registry import ScrapeStats
from newrelic_api.models import Application

from conftest import APPS_PATH, DATA_PATH, NAMES_PATH, FakeClock, make_config


WINDOW = scrape_window(datetime(2016, 3, 4, 10, 25, 42, tzinfo=timezone.utc))


def make_scraper(api, **overrides) -> Scraper:
    scraper = Scraper.from_config(make_config(**overrides), api, ScrapeStats())
    scraper.cache.clock = FakeClock()
    return scraper


def run(scraper: Scraper):
    samples = []
    scraper.scrape(WINDOW, samples.append)
    return samples


class TestScrapeWindow:
    """Test scrape window alignment"""

    def test_previous_whole_minute(self):
        """Test that the window is the preceding whole minute"""
        start, end = scrape_window(datetime(2016, 3, 4, 10, 25, 42, 500, tzinfo=timezone.utc))

        assert start == datetime(2016, 3, 4, 10, 24, tzinfo=timezone.utc)
        assert end == datetime(2016, 3, 4, 10, 25, tzinfo=timezone.utc)

    def test_windows_align_within_minute(self):
        """Test that scrapes within the same minute share the window"""
        first = scrape_window(datetime(2016, 3, 4, 10, 25, 0, tzinfo=timezone.utc))
        second = scrape_window(datetime(2016, 3, 4, 10, 25, 59, tzinfo=timezone.utc))

        assert first == second


class TestSummarySamples:
    def test_components(self):
        app = Application(
            id=1, name="app",
            application_summary={"throughput": 1.0},
            end_user_summary={"response_time": 2.0},
        )

        assert list(summary_samples(app)) == [
            Sample("app", "throughput", 1.0, "application_summary"),
            Sample("app", "response_time", 2.0, "end_user_summary"),
        ]


class TestScraper:
    """Test a full cycle against the stubbed API"""

    def test_emits_summaries_and_data(self, api):
        """Test that summaries and metric values are emitted for the application"""
        scraper = make_scraper(api)

        samples = run(scraper)

        assert len(samples) == 3 + 10 + 5
        assert Sample("Test/Client/Name", "throughput", 54.7, "application_summary") in samples
        assert Sample("Test/Client/Name", "response_time", 4.61, "end_user_summary") in samples
        assert Sample(
            "Test/Client/Name", "call_count", 2.0, "Datastore/statement/JDBC/messages/insert"
        ) in samples
        assert not scraper.stats.last_error
        assert scraper.stats.scrapes == 1
        assert scraper.state == ScrapeState.IDLE

    def test_summaries_emitted_before_data(self, api):
        """Test that bundled summaries come first"""
        samples = run(make_scraper(api))

        components = [sample.component for sample in samples[:3]]
        assert set(components) == {"application_summary", "end_user_summary"}

    def test_window_sent_to_api(self, api, stub):
        """Test that the cycle's window is used for data requests"""
        run(make_scraper(api))

        params = stub.calls(DATA_PATH)[0].url.params
        assert params["from"] == "2016-03-04T10:24:00+00:00"
        assert params["to"] == "2016-03-04T10:25:00+00:00"

    def test_inventory_failure_flags_error(self, api, stub):
        """Test that a failing inventory refresh flags the cycle without aborting it"""
        stub.fail(APPS_PATH)
        scraper = make_scraper(api)

        samples = run(scraper)

        assert samples == []
        assert scraper.stats.last_error
        assert list(scraper.stats.error.collect())[0].samples[0].value == 1
        assert scraper.state == ScrapeState.IDLE

    def test_throttled_inventory_not_an_error(self, api, stub):
        """Test that a 429 on the inventory yields no data but leaves the error flag down"""
        stub.fail(APPS_PATH, 429)
        scraper = make_scraper(api)

        samples = run(scraper)

        assert samples == []
        assert not scraper.stats.last_error

    def test_unexpected_inventory_error_isolated(self, api):
        """Test that an unexpected inventory exception flags the cycle without escaping it"""
        scraper = make_scraper(api)

        with patch.object(api, "get_applications", side_effect=RuntimeError("bad url")):
            samples = run(scraper)

        assert samples == []
        assert scraper.stats.last_error
        assert scraper.state == ScrapeState.IDLE

    def test_catalog_failure_keeps_summaries(self, api, stub):
        """Test that a failing catalog still publishes the summaries"""
        stub.fail(NAMES_PATH)
        scraper = make_scraper(api)

        samples = run(scraper)

        assert len(samples) == 3
        assert scraper.stats.last_error

    def test_data_failure_flags_error(self, api, stub):
        """Test that failing data requests flag the cycle"""
        stub.fail(DATA_PATH)
        scraper = make_scraper(api)

        samples = run(scraper)

        assert len(samples) == 3
        assert scraper.stats.last_error

    def test_error_flag_reset_each_cycle(self, api, stub):
        """Test that the error flag only reflects the latest cycle"""
        scraper = make_scraper(api, app_list_cache_time=0)
        stub.fail(APPS_PATH)
        run(scraper)
        assert scraper.stats.last_error

        stub.recover(APPS_PATH)
        run(scraper)

        assert not scraper.stats.last_error
        assert scraper.stats.scrapes == 2
        assert scraper.stats.last_duration >= 0

    def test_static_apps_skip_inventory(self, api, stub):
        """Test that configured applications are scraped without the inventory call"""
        scraper = make_scraper(api, apps=[{"id": 9045822, "name": "Static"}])

        samples = run(scraper)

        assert stub.calls(APPS_PATH) == []
        assert len(samples) == 10 + 5
        assert {sample.app for sample in samples} == {"Static"}
