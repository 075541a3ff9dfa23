"""Pytest configuration and shared fixtures."""

import asyncio
import json
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, Optional

import httpx
import pytest

from common.graphql.client import TemplateApiClient
from harness.metrics.throughput import ThroughputCounter
from harness.metrics.trend import TrendSink


class FakeClock:
    """Virtual time: ``sleep`` advances ``now`` instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += max(seconds, 0)
        await asyncio.sleep(0)


class ScriptedBackend:
    """GraphQL responder for ``httpx.MockTransport``.

    ``statuses`` is the sequence returned by successive getTemplate calls;
    the last one repeats once the sequence is exhausted.
    """

    def __init__(
        self,
        template_id: Optional[str] = "tpl-1",
        create_status: str = "PENDING",
        statuses: Optional[list] = None,
        create_response: Optional[Callable[[], httpx.Response]] = None,
    ):
        self.template_id = template_id
        self.create_status = create_status
        self.statuses = list(statuses or ["COMPLETED"])
        self.create_response = create_response
        self.creates = 0
        self.polls = 0
        self.bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.bodies.append(body)

        if "createTemplate" in body["query"]:
            self.creates += 1
            if self.create_response is not None:
                return self.create_response()
            template = {"id": self.template_id, "status": self.create_status, "zipUrl": None}
            return httpx.Response(200, json={"data": {"createTemplate": {"template": template}}})

        index = min(self.polls, len(self.statuses) - 1)
        self.polls += 1
        status = self.statuses[index]
        return httpx.Response(
            200,
            json={"data": {"getTemplate": {"template": {"status": status, "zipUrl": None}}}},
        )


def make_api_client(handler) -> TemplateApiClient:
    """API client whose HTTP calls go to ``handler``."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TemplateApiClient("http://testserver/graphql", http_client=http_client)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def clock() -> FakeClock:
    """Virtual clock starting at zero."""
    return FakeClock()


@pytest.fixture
def sink() -> TrendSink:
    """Empty trend sink."""
    return TrendSink()


@pytest.fixture
def counter(sink: TrendSink, clock: FakeClock) -> ThroughputCounter:
    """Throughput counter on the virtual clock."""
    return ThroughputCounter(sink, clock=clock)


@pytest.fixture
def sample_profile_config() -> dict:
    """Sample load profile configuration in the k6 style."""
    return {
        "name": "smoke",
        "stages": [
            {"target": 10, "duration": "2s"},
            {"target": 10, "duration": "2s"},
            {"target": 0, "duration": "1s"},
        ],
        "thresholds": {
            "http_req_failed": ["rate<0.1"],
            "e2e_time": ["p(95)<60000"],
        },
        "graceful_stop": "5s",
    }
