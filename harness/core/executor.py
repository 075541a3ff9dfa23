"""Create-then-poll workflow executed by every virtual user."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from common.exceptions import ProtocolError, TransportError
from common.graphql.client import TemplateApiClient
from common.graphql.operations import (
    CreateTemplateRequest,
    GetTemplateRequest,
    TemplateRef,
    build_create_request,
)
from common.models.metrics import CREATE_TIME, E2E_TIME, HTTP_REQ_FAILED, POLL_TIME
from common.models.workload import WorkItem, is_terminal
from common.utils import random_service_name
from harness.core.clock import MonotonicClock, elapsed_ms
from harness.metrics.throughput import ThroughputCounter
from harness.metrics.trend import TrendSink

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.05  # seconds
DEFAULT_POLL_DEADLINE = 30.0  # seconds


class WorkflowExecutor:
    """Run one create -> poll -> measure iteration per call.

    Stateless between iterations, so a single instance is shared by all
    virtual users. Request failures are counted in ``http_req_failed`` and
    never propagate out of :meth:`run_iteration`.
    """

    def __init__(
        self,
        client: TemplateApiClient,
        sink: TrendSink,
        counter: ThroughputCounter,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        poll_deadline: float = DEFAULT_POLL_DEADLINE,
        clock: Optional[MonotonicClock] = None,
        name_factory: Callable[[], str] = random_service_name,
    ):
        self.client = client
        self.sink = sink
        self.counter = counter
        self.poll_interval = poll_interval
        self.poll_deadline = poll_deadline
        self.clock = clock or MonotonicClock()
        self.name_factory = name_factory

        for metric in (CREATE_TIME, POLL_TIME, E2E_TIME):
            sink.register(metric)

    def _count_request(self, failed: bool) -> None:
        self.counter.record_request()
        self.sink.add_rate(HTTP_REQ_FAILED, failed)

    async def _create(self, request: CreateTemplateRequest) -> Optional[TemplateRef]:
        try:
            template = await self.client.create_template(request)
        except (TransportError, ProtocolError) as e:
            self._count_request(failed=True)
            logger.debug(f"Create failed for {request.input.name}: {e}")
            return None

        self._count_request(failed=False)
        return template

    async def _poll_once(self, template_id: str) -> Optional[TemplateRef]:
        try:
            template = await self.client.get_template(GetTemplateRequest(id=template_id))
        except (TransportError, ProtocolError) as e:
            self._count_request(failed=True)
            logger.debug(f"Poll failed for {template_id}: {e}")
            return None

        self._count_request(failed=False)
        return template

    async def run_iteration(self) -> Optional[WorkItem]:
        """Execute one iteration.

        Returns:
            The finished work item, or ``None`` when creation failed and the
            iteration was dropped before polling.
        """
        self.counter.tick()

        started = self.clock.now()
        item = WorkItem(name=self.name_factory())

        create_started = self.clock.now()
        template = await self._create(build_create_request(item.name))
        self.sink.record(CREATE_TIME, elapsed_ms(self.clock, create_started))

        if template is None:
            return None

        item.id = template.id
        status = template.status
        deadline = started + self.poll_deadline

        poll_started = self.clock.now()
        while self.clock.now() < deadline and not is_terminal(status):
            await self.clock.sleep(self.poll_interval)
            item.polls += 1
            polled = await self._poll_once(item.id)
            if polled is not None and polled.status:
                status = polled.status
        self.sink.record(POLL_TIME, elapsed_ms(self.clock, poll_started))

        timed_out = not is_terminal(status)
        item.finish(status, timed_out=timed_out)

        self.sink.record(
            E2E_TIME,
            elapsed_ms(self.clock, started),
            tags={
                "final": status or "UNKNOWN",
                "timed_out": "true" if timed_out else "false",
            },
        )

        if timed_out:
            logger.debug(f"Template {item.id} still {status} at poll deadline")
        return item
