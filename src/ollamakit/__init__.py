"""ollamakit: streaming Ollama client with pull and push consumers."""

from __future__ import annotations

from .client import OllamaKit
from .config import ClientConfig, load_config
from .decoder import ResponseDecoder
from .errors import DecodeError, OllamaKitError, RequestConstructionError, ServerError
from .events import StreamEvent, StreamEventType
from .http_client import StreamingHTTPClient
from .message import (
    ChatRequestData,
    ChatResponse,
    CompletionOptions,
    GenerateRequestData,
    GenerateResponse,
    Message,
    ToolSpec,
)
from .router import OllamaRouter
from .stream import Observer, ResponsePublisher, ResponseStream, Subscription

__all__ = [
    "OllamaKit",
    "ClientConfig",
    "load_config",
    "Message",
    "ToolSpec",
    "CompletionOptions",
    "ChatRequestData",
    "ChatResponse",
    "GenerateRequestData",
    "GenerateResponse",
    "OllamaRouter",
    "ResponseDecoder",
    "StreamingHTTPClient",
    "StreamEvent",
    "StreamEventType",
    "ResponseStream",
    "ResponsePublisher",
    "Subscription",
    "Observer",
    "OllamaKitError",
    "RequestConstructionError",
    "DecodeError",
    "ServerError",
]
