"""Entry point exposing Ollama streaming endpoints in pull and push form."""

from __future__ import annotations

import functools
from typing import Any, Dict, Optional, Union

import httpx

from .config import ClientConfig
from .decoder import ResponseDecoder
from .http_client import StreamingHTTPClient
from .message import ChatRequestData, ChatResponse, GenerateRequestData, GenerateResponse
from .router import OllamaRouter
from .stream import ResponsePublisher, ResponseStream


class OllamaKit:
    """Client for an Ollama server.

    ``chat`` returns an async iterator of :class:`ChatResponse` chunks::

        async with OllamaKit() as kit:
            async for chunk in kit.chat(data):
                print(chunk.content, end="")

    ``chat_publisher`` returns a publisher delivering the same chunks to
    callbacks::

        sub = kit.chat_publisher(data).subscribe(
            on_next=lambda chunk: print(chunk.content, end=""),
            on_error=lambda e: print("failed:", e),
        )
        await sub.wait()

    Neither method raises: an invalid request or config is reported as the
    only event of the returned stream or publisher.
    """

    def __init__(
        self,
        cfg: Optional[ClientConfig] = None,
        *,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        is_debug: bool = False,
    ) -> None:
        """Create the client from ``cfg`` and an optional injected HTTP client.

        An injected ``client`` is not closed by :meth:`aclose`.
        """
        cfg = cfg or ClientConfig()
        if base_url is not None:
            cfg = cfg.model_copy(update={"base_url": base_url})
        self.cfg = cfg
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(http2=cfg.http2, timeout=cfg.make_timeout())
        self._router = OllamaRouter(cfg)
        self._http = StreamingHTTPClient(client, is_debug=is_debug)
        self._chat_decoder = ResponseDecoder(ChatResponse)
        self._generate_decoder = ResponseDecoder(GenerateResponse)

    def chat(self, data: Union[ChatRequestData, Dict[str, Any]]) -> ResponseStream[ChatResponse]:
        """Stream a chat completion as an async iterator of chunks."""
        return ResponseStream(self._chat_events(data))

    def chat_publisher(self, data: Union[ChatRequestData, Dict[str, Any]]) -> ResponsePublisher[ChatResponse]:
        """Stream a chat completion to subscribers."""
        return ResponsePublisher(self._chat_events(data))

    def generate(self, data: Union[GenerateRequestData, Dict[str, Any]]) -> ResponseStream[GenerateResponse]:
        """Stream a raw completion from ``/api/generate`` as an async iterator."""
        return ResponseStream(self._generate_events(data))

    def generate_publisher(
        self, data: Union[GenerateRequestData, Dict[str, Any]]
    ) -> ResponsePublisher[GenerateResponse]:
        """Stream a raw completion from ``/api/generate`` to subscribers."""
        return ResponsePublisher(self._generate_events(data))

    def _chat_events(self, data: Any):
        build = functools.partial(self._router.chat, data)
        return functools.partial(self._http.events, build, self._chat_decoder)

    def _generate_events(self, data: Any):
        build = functools.partial(self._router.generate, data)
        return functools.partial(self._http.events, build, self._generate_decoder)

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "OllamaKit":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
