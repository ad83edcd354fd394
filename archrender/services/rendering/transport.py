"""
Single-attempt HTTP transport for provider calls.
httpx.AsyncClient per call (closed on every exit path), optional forward proxy,
hard wall-clock timeout on top of httpx's per-phase timeouts.
"""
import asyncio
import logging
import socket
import ssl
import time
from collections.abc import Iterator, Mapping
from typing import Protocol

import httpx

from archrender.core.logging import mask_proxy_url
from archrender.services.rendering.base import (
    TransportError,
    TransportErrorCode,
    TransportResult,
    TransportTimeoutError,
)

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: bytes | None,
        timeout: float,
    ) -> TransportResult:
        ...


# Fallback only: message text is locale/platform dependent, exception types come first.
_MESSAGE_SIGNALS: tuple[tuple[TransportErrorCode, tuple[str, ...]], ...] = (
    (TransportErrorCode.DNS_FAILURE, (
        "enotfound", "getaddrinfo", "name or service not known",
        "nodename nor servname", "temporary failure in name resolution",
    )),
    (TransportErrorCode.CONNECTION_REFUSED, ("econnrefused", "connection refused")),
    (TransportErrorCode.TIMEOUT, ("etimedout", "timed out", "timeout")),
    (TransportErrorCode.TLS_FAILURE, ("certificate", "ssl", "tls")),
    (TransportErrorCode.CONNECTION_RESET, ("econnreset", "connection reset")),
    (TransportErrorCode.CONNECTION_CLOSED, (
        "socket hang up", "server disconnected", "connection closed", "unexpected eof",
    )),
)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _code_from_type(exc: BaseException) -> TransportErrorCode | None:
    if isinstance(exc, (httpx.TimeoutException, TimeoutError, socket.timeout)):
        return TransportErrorCode.TIMEOUT
    if isinstance(exc, socket.gaierror):
        return TransportErrorCode.DNS_FAILURE
    if isinstance(exc, ConnectionRefusedError):
        return TransportErrorCode.CONNECTION_REFUSED
    if isinstance(exc, ssl.SSLError):
        return TransportErrorCode.TLS_FAILURE
    if isinstance(exc, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
        return TransportErrorCode.CONNECTION_RESET
    if isinstance(exc, httpx.RemoteProtocolError):
        return TransportErrorCode.CONNECTION_CLOSED
    return None


def code_from_message(message: str) -> TransportErrorCode:
    text = (message or "").lower()
    for code, signals in _MESSAGE_SIGNALS:
        if any(signal in text for signal in signals):
            return code
    return TransportErrorCode.UNKNOWN


def transport_error_code(exc: BaseException) -> TransportErrorCode:
    """Map a low-level exception to a TransportErrorCode: types first, then message text."""
    chain = list(_exception_chain(exc))
    for item in chain:
        code = _code_from_type(item)
        if code is not None:
            return code
    return code_from_message(" | ".join(str(item) for item in chain))


class HttpTransport:
    """Performs exactly one HTTP request per send()."""

    def __init__(
        self,
        proxy_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.proxy_url = proxy_url
        # Injected transport (tests, custom pools) replaces proxy routing.
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(timeout=timeout, transport=self._transport, trust_env=False)
        # trust_env=False: proxy comes only from Settings.proxy_url (managed hosting disables it).
        return httpx.AsyncClient(timeout=timeout, proxy=self.proxy_url, trust_env=False)

    async def _request(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: bytes | None,
        timeout: float,
    ) -> TransportResult:
        async with self._client(timeout) as client:
            resp = await client.request(method, url, headers=dict(headers), content=body)
            text = resp.text
        logger.info(
            "provider_response_received",
            extra={"status_code": resp.status_code, "bytes": len(resp.content)},
        )
        return TransportResult(
            status_code=resp.status_code,
            headers=dict(resp.headers),
            body=text,
        )

    async def send(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: bytes | None,
        timeout: float,
    ) -> TransportResult:
        if self.proxy_url and self._transport is None:
            logger.info("provider_request_via_proxy", extra={"proxy": mask_proxy_url(self.proxy_url)})
        start = time.monotonic()
        try:
            return await asyncio.wait_for(
                self._request(url, method, headers, body, timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(
                f"Request timeout after {timeout:g} seconds",
                detail={"timeout_seconds": timeout},
            ) from e
        except httpx.HTTPError as e:
            code = transport_error_code(e)
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.warning(
                "provider_request_error",
                extra={"error": type(e).__name__, "error_code": code.value, "latency_ms": latency_ms},
            )
            if code is TransportErrorCode.TIMEOUT:
                raise TransportTimeoutError(str(e) or "Request timeout", detail={"timeout_seconds": timeout}) from e
            raise TransportError(str(e) or type(e).__name__, code) from e
        except OSError as e:
            code = transport_error_code(e)
            if code is TransportErrorCode.TIMEOUT:
                raise TransportTimeoutError(str(e) or "Request timeout", detail={"timeout_seconds": timeout}) from e
            raise TransportError(str(e) or type(e).__name__, code) from e
