import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from httpx_sse import aconnect_sse

logger = logging.getLogger(__name__)


class ControlRequestError(Exception):
    pass


class TalkTimeClient:
    def __init__(self, base_url: str, timeout: float = 60.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def start(self, url: str | None = None, mic: bool = False, device: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"mic": mic}
        if url:
            payload["url"] = url
        if device:
            payload["device"] = device
        return await self._request("POST", "/start", json=payload)

    async def stop(self) -> dict[str, Any]:
        return await self._request("POST", "/stop")

    async def status(self) -> dict[str, Any]:
        return await self._request("GET", "/status")

    async def devices(self) -> list[dict[str, str]]:
        result = await self._request("GET", "/devices")
        return result.get("devices", [])

    async def watch(self) -> AsyncIterator[dict[str, Any]]:
        timeout = httpx.Timeout(self._timeout, read=None)
        async with self._client(timeout) as client:
            async with aconnect_sse(client, "GET", f"{self._base_url}/events") as event_source:
                async for sse in event_source.aiter_sse():
                    try:
                        yield json.loads(sse.data)
                    except json.JSONDecodeError:
                        logger.debug("Skipping non-JSON event: %r", sse.data)
                        continue

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        async with self._client(httpx.Timeout(self._timeout)) as client:
            response = await client.request(method, f"{self._base_url}{path}", **kwargs)
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_error:
            message = body.get("error") if isinstance(body, dict) else None
            raise ControlRequestError(message or f"HTTP {response.status_code}")
        return body

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(timeout=timeout, transport=self._transport)
        return httpx.AsyncClient(timeout=timeout)
