"""HTTP client for the action server.

Usage::

    async with ActionServerClient("http://127.0.0.1:3000") as client:
        resp = await client.ask("summarize", attachments={"notes.txt": b"hi"})
        print(resp.exit_code, resp.output)
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Mapping, Optional

import httpx

from action_server.service.schemas import AskResponse, HealthResponse

logger = logging.getLogger(__name__)

# Server-side runs default to a 30s deadline and may queue behind others
_DEFAULT_TIMEOUT = httpx.Timeout(connect=5.0, read=120.0, write=10.0, pool=5.0)


class ActionServerHTTPError(RuntimeError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Service error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class ActionServerClient:
    """Async HTTP client for the action server."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:3000",
        timeout: httpx.Timeout = _DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )
        logger.info("Action server client -> %s", base_url)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        resp = await self._client.request(method, path, **kwargs)
        if resp.is_error:
            try:
                message = resp.json().get("error") or resp.text
            except ValueError:
                message = resp.text
            logger.error("Action server HTTP %d: %s", resp.status_code, message[:500])
            raise ActionServerHTTPError(resp.status_code, message)
        return resp

    # ── Ask ──────────────────────────────────────────────────────────────

    async def ask(
        self,
        instruction: str,
        attachments: Optional[Mapping[str, bytes]] = None,
    ) -> AskResponse:
        """Run the tool. ``attachments`` maps file name to raw bytes."""
        payload: dict[str, Any] = {"instruction": instruction}
        if attachments:
            payload["attachments"] = [
                {"name": name, "content": base64.b64encode(data).decode("ascii")}
                for name, data in attachments.items()
            ]
        resp = await self._request("POST", "/gemini/ask", json=payload)
        return AskResponse.model_validate(resp.json())

    # ── Health ───────────────────────────────────────────────────────────

    async def health(self) -> HealthResponse:
        resp = await self._request("GET", "/health")
        return HealthResponse.model_validate(resp.json())

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ActionServerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
