"""Retrying, rate-limited httpx client for JSON-RPC endpoints."""

from __future__ import annotations

import itertools
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import RetryTransport

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from ledgersync.config.http_resilience import ResilienceConfig

log = getLogger(__name__)


def rpc_envelope(method: str, params: Sequence[Any], *, request_id: int) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": list(params)}


class ResilientClient:
    """JSON-RPC over an httpx client with retries and an outbound rate limit.

    Request ids count up from 1 per client. ``transport`` replaces the network
    layer underneath the retry transport, which is how tests plug in
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._ids = itertools.count(1)
        self._limiter: AsyncLimiter | None = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit
            else None
        )
        self._client = httpx.AsyncClient(
            base_url=config.base_url or "",
            timeout=config.timeout_seconds,
            headers=dict(config.default_headers or {}),
            transport=RetryTransport(transport=transport, retry=config.retry.build()),
        )

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(self, url: str, method: str, params: Sequence[Any]) -> httpx.Response:
        """POST one JSON-RPC request and return the raw response.

        Transport errors propagate once the retry policy gives up; status codes
        and the JSON-RPC ``error`` member are left to the caller.
        """

        payload = rpc_envelope(method, params, request_id=next(self._ids))
        log.debug("%s %s id=%s", self.config.name, method, payload["id"])
        if self._limiter is None:
            return await self._client.post(url, json=payload)
        async with self._limiter:
            return await self._client.post(url, json=payload)
