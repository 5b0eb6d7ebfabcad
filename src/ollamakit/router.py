"""Build outbound HTTP requests for the Ollama endpoints."""

from __future__ import annotations

from typing import Any, Dict, Union

import httpx
from pydantic import BaseModel, ValidationError

from .config import ClientConfig
from .errors import RequestConstructionError
from .message import ChatRequestData, GenerateRequestData


class OllamaRouter:
    """Map payloads to fully formed :class:`httpx.Request` objects.

    Every failure while building is raised as
    :class:`RequestConstructionError`; nothing is sent from here.
    """

    def __init__(self, cfg: ClientConfig) -> None:
        self.cfg = cfg

    def chat(self, data: Union[ChatRequestData, Dict[str, Any]]) -> httpx.Request:
        payload = self._coerce(data, ChatRequestData)
        return self._build("/api/chat", payload.to_body())

    def generate(self, data: Union[GenerateRequestData, Dict[str, Any]]) -> httpx.Request:
        payload = self._coerce(data, GenerateRequestData)
        return self._build("/api/generate", payload.to_body())

    def _coerce(self, data: Any, model: type[BaseModel]) -> Any:
        if isinstance(data, model):
            return data
        if isinstance(data, dict):
            try:
                return model.model_validate(data)
            except ValidationError as e:
                raise RequestConstructionError(f"Invalid {model.__name__}: {e}") from e
        raise RequestConstructionError(f"Expected {model.__name__} or dict, got {type(data).__name__}")

    def _base_url(self) -> httpx.URL:
        try:
            url = httpx.URL(self.cfg.base_url)
        except (httpx.InvalidURL, TypeError) as e:
            raise RequestConstructionError(f"Invalid base URL {self.cfg.base_url!r}: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise RequestConstructionError(f"Base URL must be an absolute http(s) URL, got {self.cfg.base_url!r}")
        return url

    def _build(self, path: str, body: Dict[str, Any]) -> httpx.Request:
        base = self._base_url()
        url = base.copy_with(path=base.path.rstrip("/") + path)
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/x-ndjson",
        }
        headers.update(self.cfg.headers)
        try:
            return httpx.Request(
                "POST",
                url,
                headers=headers,
                json=body,
                extensions={"timeout": self.cfg.make_timeout().as_dict()},
            )
        except (TypeError, ValueError) as e:
            raise RequestConstructionError(f"Could not serialize request body: {e}") from e
