"""Async HTTP client for the template GraphQL API."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from common.exceptions import ProtocolError, TransportError
from common.graphql.operations import (
    CreateTemplateRequest,
    GetTemplateRequest,
    TemplateRef,
    extract_template,
)

logger = logging.getLogger(__name__)


class TemplateApiClient:
    """GraphQL client issuing createTemplate / getTemplate over HTTP POST.

    One instance is shared by every virtual user; httpx pools connections.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        max_connections: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._owns_client = http_client is None

        if http_client is None:
            limits = httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            )
            http_client = httpx.AsyncClient(timeout=timeout, limits=limits)
        self._client = http_client

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TemplateApiClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def _post(self, operation: str, body: dict) -> dict:
        """POST one GraphQL document and return the decoded body."""
        try:
            response = await self._client.post(
                self.url,
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"{operation}: timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{operation}: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise TransportError(
                f"{operation}: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"{operation}: response is not JSON") from e

    async def create_template(self, request: CreateTemplateRequest) -> TemplateRef:
        """Submit a template; the returned ref always has an ``id``."""
        body = await self._post(request.operation, request.to_body())
        template = extract_template(body, request.operation)

        if template is None or not template.id:
            raise ProtocolError(f"{request.operation}: response has no template id")

        logger.debug(f"Created template {template.id} ({template.status})")
        return template

    async def get_template(self, request: GetTemplateRequest) -> TemplateRef:
        """Fetch the template status; fields may be missing."""
        body = await self._post(request.operation, request.to_body())
        template = extract_template(body, request.operation)
        return template or TemplateRef()
