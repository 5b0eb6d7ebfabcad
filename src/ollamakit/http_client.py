"""Streaming HTTP transport: open, frame, decode and forward NDJSON lines."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, TypeVar

import httpx
from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram

from .decoder import ResponseDecoder
from .events import StreamEvent

T = TypeVar("T")

logger = logging.getLogger("ollamakit")


class StreamingHTTPClient:
    """Own one ``httpx.AsyncClient`` and stream decoded records through it.

    Each call to :meth:`stream` or :meth:`events` is an independent session
    with its own connection; nothing is shared between sessions except the
    client's connection pool.
    """

    _sessions = Counter(
        "ollamakit_stream_sessions_total",
        "Stream sessions by terminal result",
        labelnames=["endpoint", "result"],
    )
    _inflight = Gauge(
        "ollamakit_inflight_streams",
        "Streams currently holding a connection",
        labelnames=["endpoint"],
    )
    _chunks = Counter(
        "ollamakit_stream_chunks_total",
        "Response chunks decoded",
        labelnames=["endpoint"],
    )
    _first_chunk = Histogram(
        "ollamakit_first_chunk_latency_seconds",
        "Time from request to first decoded chunk",
        labelnames=["endpoint"],
        buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
    )
    _chunk_gap = Histogram(
        "ollamakit_stream_interchunk_gap_seconds",
        "Gap between decoded chunks",
        labelnames=["endpoint"],
    )

    def __init__(self, client: httpx.AsyncClient, is_debug: bool = False) -> None:
        self._client = client
        self._tracer = trace.get_tracer(__name__)
        self._logger = logger
        self._is_debug = is_debug

        if self._is_debug:
            self._client.event_hooks.setdefault("request", []).append(self._log_request)
            self._client.event_hooks.setdefault("response", []).append(self._log_response)
        else:
            self._client.event_hooks.setdefault("request", []).append(self._log_request_jsonl)
            self._client.event_hooks.setdefault("response", []).append(self._log_response_jsonl)

    async def _log_request(self, request: httpx.Request) -> None:
        """Log outgoing HTTP request details as a cURL command."""
        import shlex

        command = f"curl -N -X {request.method} '{request.url}'"
        for k, v in request.headers.items():
            command += f" \\\n  -H '{k}: {v}'"

        body_bytes = request.content
        if body_bytes:
            try:
                body_str = body_bytes.decode()
            except UnicodeDecodeError:
                body_str = "<...binary data...>"
            command += f" \\\n  -d {shlex.quote(body_str)}"

        self._logger.info(f"http request as curl:\n{command}")

    async def _log_response(self, response: httpx.Response) -> None:
        """Log the response status line and headers; the body is streamed and left alone."""
        log_lines = [
            f"http response: {response.status_code} {response.reason_phrase}",
            f"  url: {response.url}",
        ]
        for k, v in response.headers.items():
            log_lines.append(f"  header '{k}: {v}'")

        self._logger.info("\n".join(log_lines))

    def _sanitize_headers(self, headers: dict[str, str]) -> dict[str, str]:
        """Remove sensitive information from headers."""
        sensitive_keys = {"authorization", "x-api-key", "api-key", "cookie", "proxy-authorization"}
        return {k: "[REDACTED]" if k.lower() in sensitive_keys else v for k, v in headers.items()}

    def _sanitize_body(self, body: str) -> dict[str, Any] | str:
        """Parse the request body for logging, truncating anything that isn't JSON."""
        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            return body[:1000] + "..." if len(body) > 1000 else body
        if isinstance(data, dict) and isinstance(data.get("images"), list):
            # base64 payloads would swamp the log
            data["images"] = [f"<{len(img)} chars>" for img in data["images"]]
        return data

    async def _log_request_jsonl(self, request: httpx.Request) -> None:
        """Log outgoing HTTP request in JSONL format for production use."""
        body_str = ""
        if request.content:
            try:
                body_str = request.content.decode()
            except UnicodeDecodeError:
                body_str = "<binary data>"

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": "http_request",
            "method": request.method,
            "url": str(request.url),
            "headers": self._sanitize_headers(dict(request.headers)),
            "body": self._sanitize_body(body_str) if body_str else None,
        }

        self._logger.info(json.dumps(log_data, separators=(",", ":")))

    async def _log_response_jsonl(self, response: httpx.Response) -> None:
        """Log incoming HTTP response in JSONL format for production use."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": "http_response",
            "status_code": response.status_code,
            "reason_phrase": response.reason_phrase,
            "url": str(response.url),
            "headers": self._sanitize_headers(dict(response.headers)),
            "body": "<streaming response>",
        }

        self._logger.info(json.dumps(log_data, separators=(",", ":")))

    async def stream(self, request: httpx.Request, decoder: ResponseDecoder[T]) -> AsyncGenerator[T, None]:
        """Send ``request`` and yield one decoded value per non-empty body line.

        Raises the first transport or decode error; values yielded before
        it stay valid. The connection is released when the generator
        finishes, fails or is closed.
        """
        endpoint = request.url.path
        result = "success"
        count = 0
        start = perf_counter()
        last = start
        attrs = {
            "http.method": request.method,
            "http.url": str(request.url),
        }
        model = _peek_model(request)
        if model:
            attrs["ollama.model"] = model

        with self._tracer.start_as_current_span("ollama.stream", attributes=attrs) as span:
            self._inflight.labels(endpoint).inc()
            try:
                response = await self._client.send(request, stream=True)
                try:
                    if response.is_error:
                        await response.aread()
                        response.raise_for_status()

                    async with aclosing(_iter_ndjson_lines(response)) as lines:
                        async for line in lines:
                            value = decoder.decode(line)
                            if value is None:
                                continue
                            now = perf_counter()
                            if count == 0:
                                self._first_chunk.labels(endpoint).observe(now - start)
                            else:
                                self._chunk_gap.labels(endpoint).observe(now - last)
                            last = now
                            count += 1
                            self._chunks.labels(endpoint).inc()
                            yield value
                finally:
                    await response.aclose()
            except (GeneratorExit, asyncio.CancelledError):
                result = "cancelled"
                raise
            except Exception as e:
                result = "error"
                self._logger.error(f"stream {endpoint} failed after {count} chunks: {e!r}")
                raise
            finally:
                self._inflight.labels(endpoint).dec()
                self._sessions.labels(endpoint, result).inc()
                span.set_attribute("ollama.chunk_count", count)
                span.set_attribute("ollama.result", result)

    async def events(
        self, build: Callable[[], httpx.Request], decoder: ResponseDecoder[T]
    ) -> AsyncGenerator[StreamEvent[T], None]:
        """Run one session and report it as tagged events.

        Yields a ``NEXT`` event per decoded value and then exactly one
        terminal event. Failures while building the request become the
        only event of the session.
        """
        try:
            request = build()
        except Exception as e:
            self._logger.error(f"could not build request: {e!r}")
            yield StreamEvent.failed(e)
            return

        try:
            async with aclosing(self.stream(request, decoder)) as values:
                async for value in values:
                    yield StreamEvent.next(value)
        except Exception as e:
            yield StreamEvent.failed(e)
            return
        yield StreamEvent.completed()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


async def _iter_ndjson_lines(response: httpx.Response) -> AsyncGenerator[str, None]:
    """Split the body on ``\\n`` only.

    ``aiter_lines`` also breaks on U+0085, U+2028 and U+2029, which JSON
    allows unescaped inside strings.
    """
    buffer = ""
    async for text in response.aiter_text():
        buffer += text
        lines = buffer.split("\n")
        buffer = lines.pop()  # keep the possibly incomplete last line
        for line in lines:
            yield line
    if buffer:
        yield buffer


def _peek_model(request: httpx.Request) -> str | None:
    try:
        body = json.loads(request.content or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(body, dict) and isinstance(body.get("model"), str):
        return body["model"]
    return None
