"""
Proxy channel.

Named request/response handlers for operations the page cannot or must not
do itself: signing requests with secrets that stay in the host, and
outbound HTTP that would be blocked by the page's origin. Callers get a
JSON-like result or an error marker; they never get an exception.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from tubeshell.errors import ProxyError
from tubeshell.obs import logger

DEFAULT_TIMEOUT = 10.0

HTTP_REQUEST = "http.request"

ProxyHandler = Callable[[Any], Awaitable[Any]]


def error_marker(message: str, **extra: Any) -> dict[str, Any]:
    return {"error": True, "message": message, **extra}


def is_error(result: Any) -> bool:
    """True for a missing result or an error marker (ours or the remote API's)."""
    if result is None:
        return True
    return isinstance(result, Mapping) and bool(result.get("error"))


def sign_params(params: Mapping[str, Any], secret: str) -> str:
    """
    Last.fm-style API signature.

    Parameters sorted by name, concatenated as name+value (``format`` and
    ``callback`` excluded), secret appended, md5 hex digest.
    """
    payload = "".join(
        f"{key}{params[key]}" for key in sorted(params) if key not in ("format", "callback")
    )
    return hashlib.md5((payload + secret).encode("utf-8")).hexdigest()


class ProxyChannel:
    def __init__(self, timeout: float = DEFAULT_TIMEOUT, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._handlers: dict[str, ProxyHandler] = {}
        self.register(HTTP_REQUEST, self._http_request)

    def register(self, name: str, handler: ProxyHandler) -> None:
        if name in self._handlers:
            logger.warning(f"Replacing proxy handler {name}")
        self._handlers[name] = handler

    def register_signature(self, name: str, secret_getter: Callable[[], str]) -> None:
        """Register a signing handler whose secret never leaves the host."""

        async def handler(payload: Any) -> Any:
            params = payload.get("params") if isinstance(payload, Mapping) else None
            if not isinstance(params, Mapping):
                raise ProxyError("signature request needs params")
            secret = secret_getter()
            if not secret:
                raise ProxyError("no secret configured")
            return {"signature": sign_params(params, secret)}

        self.register(name, handler)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def request(self, name: str, payload: Any = None) -> Any:
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning(f"Unknown proxy request: {name}")
            return error_marker(f"Unknown request: {name}")
        try:
            return await handler(payload)
        except asyncio.CancelledError:
            raise
        except ProxyError as e:
            logger.warning(f"Proxy request {name} failed: {e}")
            return error_marker(str(e))
        except Exception as e:
            logger.exception(f"Proxy handler {name} crashed")
            return error_marker(f"{type(e).__name__}: {e}")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def _http_request(self, payload: Any) -> Any:
        if not isinstance(payload, Mapping) or not payload.get("url"):
            raise ProxyError("http request needs a url")

        method = str(payload.get("method") or "GET").upper()
        headers = dict(payload.get("headers") or {})
        body = payload.get("body")
        content = body if isinstance(body, (str, bytes)) or body is None else json.dumps(body)

        try:
            response = await self.client.request(
                method,
                payload["url"],
                headers=headers,
                content=content,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ProxyError(f"timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ProxyError(f"request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            message = data.get("message") if isinstance(data, Mapping) else None
            return error_marker(message or f"HTTP {response.status_code}", status=response.status_code, body=data)
        if data is None:
            # Some endpoints answer 200 with an empty or non-JSON body
            return {"status": response.status_code}
        return data
