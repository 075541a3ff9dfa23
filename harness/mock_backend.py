"""In-memory template API for local runs and tests."""

from __future__ import annotations

import logging
import random
import threading
from collections import deque
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from common.models.workload import TemplateStatus
from common.utils import generate_id

logger = logging.getLogger(__name__)


class TemplateBackend:
    """Templates advance PENDING -> PROCESSING -> COMPLETED as they are polled.

    Only the last ``retain_finished`` terminal templates stay readable, so
    memory is bounded by the templates still in flight.
    """

    def __init__(
        self,
        processing_polls: int = 2,
        failure_rate: float = 0.0,
        seed: Optional[int] = None,
        retain_finished: int = 1000,
    ):
        self.processing_polls = processing_polls
        self.failure_rate = failure_rate
        self._random = random.Random(seed)
        self._templates: dict[str, dict] = {}
        self._finished: deque[str] = deque(maxlen=max(retain_finished, 1))
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._templates)

    def create(self, name: str) -> dict:
        template = {
            "id": generate_id("tpl"),
            "name": name,
            "status": TemplateStatus.PENDING.value,
            "zipUrl": None,
            "polls": 0,
        }
        with self._lock:
            self._templates[template["id"]] = template
        logger.debug(f"Mock backend queued template {template['id']} ({name})")
        return self._public(template)

    def get(self, template_id: str) -> Optional[dict]:
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                return None
            self._advance(template)
            return self._public(template)

    def _advance(self, template: dict) -> None:
        status = template["status"]
        if status in (TemplateStatus.COMPLETED.value, TemplateStatus.FAILED.value):
            return

        template["polls"] += 1
        if status == TemplateStatus.PENDING.value:
            template["status"] = TemplateStatus.PROCESSING.value

        if template["polls"] > self.processing_polls:
            if self.failure_rate and self._random.random() < self.failure_rate:
                template["status"] = TemplateStatus.FAILED.value
            else:
                template["status"] = TemplateStatus.COMPLETED.value
                template["zipUrl"] = f"/downloads/{template['id']}.zip"
            self._retire(template["id"])

    def _retire(self, template_id: str) -> None:
        if len(self._finished) == self._finished.maxlen:
            self._templates.pop(self._finished[0], None)
        self._finished.append(template_id)

    @staticmethod
    def _public(template: dict) -> dict:
        return {k: v for k, v in template.items() if k != "polls"}


def _errors(message: str) -> dict:
    return {"data": None, "errors": [{"message": message}]}


def create_app(
    processing_polls: int = 2,
    failure_rate: float = 0.0,
    seed: Optional[int] = None,
    retain_finished: int = 1000,
) -> FastAPI:
    """Create the mock API application."""
    app = FastAPI(title="Template API (mock)", docs_url=None, redoc_url=None)
    backend = TemplateBackend(processing_polls, failure_rate, seed, retain_finished)
    app.state.backend = backend

    @app.post("/graphql")
    async def graphql(request: Request):
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(status_code=400, content=_errors("invalid JSON body"))

        if not isinstance(body, dict) or not isinstance(body.get("query"), str):
            return JSONResponse(status_code=400, content=_errors("missing query"))

        query = body["query"]
        variables = body.get("variables") or {}
        if not isinstance(variables, dict):
            return JSONResponse(status_code=400, content=_errors("variables must be an object"))

        if "createTemplate" in query:
            payload = variables.get("in") or {}
            name = payload.get("name") if isinstance(payload, dict) else None
            if not isinstance(name, str) or not name:
                return _errors("createTemplate: input.name is required")
            template = backend.create(name)
            return {
                "data": {
                    "createTemplate": {
                        "success": True,
                        "message": "template queued",
                        "template": template,
                    }
                }
            }

        if "getTemplate" in query:
            template = backend.get(str(variables.get("id", "")))
            if template is None:
                return _errors(f"getTemplate: template {variables.get('id')} not found")
            return {"data": {"getTemplate": {"template": template}}}

        return _errors("unknown operation")

    @app.get("/health")
    async def health():
        return {"status": "healthy", "templates": len(backend)}

    return app
