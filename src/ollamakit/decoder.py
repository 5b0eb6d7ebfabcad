"""Turn single NDJSON lines into typed response values."""

from __future__ import annotations

import json
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import DecodeError, ServerError

T = TypeVar("T", bound=BaseModel)


class ResponseDecoder(Generic[T]):
    """Decode complete lines into ``response_type`` instances.

    The decoder holds no state between lines. Blank lines are keep-alive
    noise and decode to ``None``.
    """

    def __init__(self, response_type: type[T]) -> None:
        self.response_type = response_type

    def decode(self, line: str | bytes) -> T | None:
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodeError(line.decode("utf-8", "replace"), e) from e

        text = line.strip()
        if not text:
            return None

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError(text, e) from e

        if not isinstance(data, dict):
            raise DecodeError(text, TypeError(f"expected a JSON object, got {type(data).__name__}"))

        # Ollama reports failures after the stream has started as {"error": "..."}
        if "error" in data and "model" not in data:
            raise ServerError(text, str(data["error"]))

        try:
            return self.response_type.model_validate(data)
        except ValidationError as e:
            raise DecodeError(text, e) from e

    def __repr__(self) -> str:
        return f"ResponseDecoder({self.response_type.__name__})"
