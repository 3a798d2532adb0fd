"""Shared fixtures: a stubbed NewRelic API served through httpx.MockTransport"""
import json
import threading
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest

from config import Config
from newrelic_api.api import NewRelicAPI
from newrelic_api.client import NewRelicClient


FIXTURES = Path(__file__).parent / "fixtures"

TEST_API_KEY = "205071e37e95bdaa327c62ccd3201da9289ccd17"
TEST_APP_ID = 9045822
TEST_SERVER = "http://newrelic.test"

APPS_PATH = "/v2/applications.json"
NAMES_PATH = f"/v2/applications/{TEST_APP_ID}/metrics.json"
DATA_PATH = f"/v2/applications/{TEST_APP_ID}/metrics/data.json"


def load_fixture(name: str) -> dict:
    return json.loads((FIXTURES / name).read_text())


class StubNewRelic:
    """In-memory NewRelic API recording every request it serves"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.failures: Dict[str, int] = {}
        self._lock = threading.Lock()

    def fail(self, path: str, status_code: int = 500) -> None:
        self.failures[path] = status_code

    def recover(self, path: str) -> None:
        self.failures.pop(path, None)

    def calls(self, path: str) -> List[httpx.Request]:
        with self._lock:
            return [request for request in self.requests if request.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)

        if request.headers.get("X-Api-Key") != TEST_API_KEY:
            return httpx.Response(403, json={"error": {"title": "Invalid API key"}})

        path = request.url.path
        if path in self.failures:
            return httpx.Response(self.failures[path], json={"error": {"title": "Stubbed failure"}})

        if path == APPS_PATH:
            return httpx.Response(200, json=load_fixture("application_list.json"))

        if path == NAMES_PATH:
            return self._metric_names(request)

        if path == DATA_PATH:
            return self._metric_data(request)

        return httpx.Response(404)

    def _metric_names(self, request: httpx.Request) -> httpx.Response:
        base = f"{TEST_SERVER}{NAMES_PATH}"
        if request.url.params.get("page") == "2":
            link = f'<{base}?page=1>; rel="first", <{base}?page=1>; rel="prev"'
            return httpx.Response(200, json=load_fixture("metric_names_2.json"), headers={"Link": link})

        link = f'<{base}?page=2>; rel="next", <{base}?page=2>; rel="last"'
        return httpx.Response(200, json=load_fixture("metric_names.json"), headers={"Link": link})

    def _metric_data(self, request: httpx.Request) -> httpx.Response:
        requested = set(request.url.params.get_list("names[]"))
        payload = load_fixture("metric_data.json")
        payload["metric_data"]["metrics"] = [
            metric for metric in payload["metric_data"]["metrics"] if metric["name"] in requested
        ]
        return httpx.Response(200, json=payload)


def make_config(**overrides) -> Config:
    values = {
        "api_key": TEST_API_KEY,
        "api_server": TEST_SERVER,
        "timeout": 5,
        "period": 60,
    }
    values.update(overrides)
    return Config(**values)


def make_api(handler, config: Optional[Config] = None) -> NewRelicAPI:
    config = config or make_config()
    client = NewRelicClient.from_config(config, transport=httpx.MockTransport(handler))
    return NewRelicAPI.from_config(config, client)


@pytest.fixture
def stub():
    return StubNewRelic()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def api(stub, config):
    return make_api(stub, config)


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now
