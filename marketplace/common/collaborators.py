"""HTTP plumbing for calls to collaborator services.

Every outbound call is bounded by `collaborator_timeout_seconds` and carries the
current trace id plus the caller's forwarded identity headers.
"""

import httpx

from marketplace.common.config import settings
from marketplace.common.errors import Conflict, NotFound, Upstream
from marketplace.common.identity import Caller
from marketplace.common.logging import trace_id_ctx


class CollaboratorClient:
    """Base for thin async clients of one downstream service."""

    name = "collaborator"

    def __init__(self, base_url: str, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    def client(self, caller: Caller | None = None) -> httpx.AsyncClient:
        headers = caller.forward_headers() if caller else {}
        trace_id = trace_id_ctx.get()
        if trace_id:
            headers["x-trace-id"] = trace_id
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.collaborator_timeout_seconds,
            headers=headers,
            transport=self.transport,
        )

    async def request(self, method: str, path: str, caller: Caller | None = None, **kwargs) -> httpx.Response:
        """Send one request and translate failures into the error taxonomy."""

        try:
            async with self.client(caller) as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise Upstream(f"{self.name} timed out: {method} {path}") from exc
        except httpx.HTTPError as exc:
            raise Upstream(f"{self.name} unreachable: {exc}") from exc
        if resp.status_code == 404:
            raise NotFound(f"{self.name}: {path} not found")
        if resp.status_code == 409:
            raise Conflict(f"{self.name}: {resp.text}")
        if resp.status_code >= 400:
            raise Upstream(f"{self.name} returned {resp.status_code} for {method} {path}")
        return resp
