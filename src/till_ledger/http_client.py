from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

import httpx

from .config import ClientConfig
from .error_mapper import is_retryable_status, map_error
from .exceptions import TransportError

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"
TRACE_HEADER_ALIASES = (TRACE_HEADER, "X-Trace-Id", "x-trace-id")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class TraceContext:
    trace_id: str | None = None

    def ensure(self) -> str:
        if not self.trace_id:
            self.trace_id = str(uuid.uuid4())
        return self.trace_id

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        for key in TRACE_HEADER_ALIASES:
            trace_id = headers.get(key)
            if trace_id:
                self.trace_id = trace_id
                return

    def update_from_payload(self, payload: Mapping[str, object]) -> None:
        trace_id = payload.get("trace_id")
        if isinstance(trace_id, str) and trace_id:
            self.trace_id = trace_id


@dataclass
class LastOperation:
    module: str
    operation: str
    duration_ms: int
    result: str
    attempts: int
    trace_id: str | None


@dataclass
class HttpClient:
    config: ClientConfig
    trace: TraceContext | None = None
    transport: httpx.AsyncBaseTransport | None = None
    sleep: Sleep = asyncio.sleep
    client: httpx.AsyncClient | None = None
    last_operation: LastOperation | None = None
    _owns_client: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.trace is None:
            self.trace = TraceContext()
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.config.api_base_url.rstrip("/") + "/",
                timeout=httpx.Timeout(
                    self.config.read_timeout_seconds,
                    connect=self.config.connect_timeout_seconds,
                ),
                limits=httpx.Limits(max_connections=self.config.max_connections),
                verify=self.config.verify_ssl,
                transport=self.transport,
            )
            self._owns_client = True

    async def aclose(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry_mutation: bool = False,
        module: str = "unknown",
        operation: str = "unknown",
    ) -> dict[str, Any] | list[Any] | None:
        """Send one request, retrying reads (and keyed mutations) on transport or 5xx failures."""
        if self.client is None:
            raise RuntimeError("HTTP client not initialized")
        trace_context = self.trace or TraceContext()
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)
        request_headers[TRACE_HEADER] = trace_context.ensure()

        normalized_method = method.upper()
        can_retry = normalized_method in {"GET", "HEAD"} or retry_mutation
        attempts = self.config.retries + 1 if can_retry else 1

        started = time.monotonic()
        response: httpx.Response | None = None
        attempt = 0
        for attempt in range(attempts):
            try:
                response = await self.client.request(
                    normalized_method,
                    path.lstrip("/"),
                    headers=request_headers,
                    json=json_body,
                    params=params,
                )
            except httpx.TransportError as exc:
                if attempt >= attempts - 1:
                    self._record_operation(
                        module, operation, started, "transport_error", attempt + 1, trace_context.trace_id
                    )
                    raise TransportError(
                        code="TRANSPORT_ERROR",
                        message=str(exc) or type(exc).__name__,
                        details={"type": type(exc).__name__},
                        trace_id=trace_context.trace_id,
                        status_code=0,
                        raw_payload=None,
                    ) from exc
                logger.warning(
                    "http_retry",
                    extra={"operation": operation, "attempt": attempt + 1, "reason": type(exc).__name__},
                )
            else:
                if not is_retryable_status(response.status_code) or attempt >= attempts - 1:
                    break
                logger.warning(
                    "http_retry",
                    extra={"operation": operation, "attempt": attempt + 1, "status_code": response.status_code},
                )
            await self.sleep(self.config.retry_backoff_seconds * (2**attempt))

        if response is None:
            raise RuntimeError("HTTP request finished without a response")

        trace_context.update_from_headers(response.headers)
        if response.is_success:
            self._record_operation(module, operation, started, "success", attempt + 1, trace_context.trace_id)
            if not response.content:
                return None
            return response.json()

        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text}
        if not isinstance(payload, dict):
            payload = {"details": payload}
        trace_context.update_from_payload(payload)
        self._record_operation(module, operation, started, "error", attempt + 1, trace_context.trace_id)
        raise map_error(response.status_code, payload, trace_context.trace_id)

    def _record_operation(
        self,
        module: str,
        operation: str,
        started: float,
        result: str,
        attempts: int,
        trace_id: str | None,
    ) -> None:
        self.last_operation = LastOperation(
            module=module,
            operation=operation,
            duration_ms=int((time.monotonic() - started) * 1000),
            result=result,
            attempts=attempts,
            trace_id=trace_id,
        )
