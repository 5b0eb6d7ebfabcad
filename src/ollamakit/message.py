"""Ollama request payloads and streamed response chunks."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """A single chat message in Ollama format.

    Images are passed as base64 strings, matching what ``/api/chat``
    accepts for multimodal models.
    """

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant", "tool"] = Field(..., description="The role of the message sender")
    content: str = Field("", description="The text content of the message")
    images: Optional[List[str]] = Field(None, description="Base64 encoded images for multimodal models")
    tool_calls: Optional[List[Dict[str, Any]]] = Field(None, description="Tool calls made by the assistant")

    @classmethod
    def create_system(cls, content: str) -> "Message":
        """Create a system message."""
        return cls(role="system", content=content)

    @classmethod
    def create_user(cls, content: str, images: Optional[List[str]] = None) -> "Message":
        """Create a user message, optionally with images."""
        return cls(role="user", content=content, images=images)

    @classmethod
    def create_assistant(cls, content: str) -> "Message":
        """Create an assistant message."""
        return cls(role="assistant", content=content)

    @classmethod
    def create_tool_result(cls, content: str) -> "Message":
        """Create a tool result message."""
        return cls(role="tool", content=content)

    def has_tool_calls(self) -> bool:
        """Check if this message contains tool calls."""
        return bool(self.tool_calls)


class ToolSpec(BaseModel):
    """Specification for a single function tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Dict[str, Any]

    def to_ollama(self) -> Dict[str, Any]:
        """Convert to the ``{"type": "function", ...}`` shape Ollama expects."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class CompletionOptions(BaseModel):
    """Model options forwarded verbatim in the ``options`` field."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # sampling
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    min_p: Optional[float] = None
    tfs_z: Optional[float] = None
    typical_p: Optional[float] = None
    seed: Optional[int] = None

    # repetition
    repeat_last_n: Optional[int] = None
    repeat_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None

    # mirostat
    mirostat: Optional[int] = None
    mirostat_tau: Optional[float] = None
    mirostat_eta: Optional[float] = None

    # length & context
    num_ctx: Optional[int] = None
    num_predict: Optional[int] = None
    num_keep: Optional[int] = None
    stop: Optional[List[str]] = None


class ChatRequestData(BaseModel):
    """Payload for ``POST /api/chat``."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(..., min_length=1, description="Name of the model to chat with")
    messages: List[Message] = Field(..., description="Conversation history, oldest first")
    tools: Optional[List[ToolSpec]] = Field(None, description="Tools the model may call")
    format: Optional[Union[Literal["json"], Dict[str, Any]]] = Field(
        None, description="Either 'json' or a JSON schema the output must follow"
    )
    options: Optional[CompletionOptions] = None
    keep_alive: Optional[Union[str, int]] = Field(
        None, description="How long the model stays loaded after the request"
    )

    def to_body(self) -> Dict[str, Any]:
        """Serialize into the JSON body sent to the server."""
        body = self.model_dump(mode="json", exclude_none=True, exclude={"tools", "options"})
        if self.tools:
            body["tools"] = [tool.to_ollama() for tool in self.tools]
        if self.options is not None:
            body["options"] = self.options.model_dump(exclude_none=True)
        body["stream"] = True
        return body


class GenerateRequestData(BaseModel):
    """Payload for ``POST /api/generate``."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(..., min_length=1)
    prompt: str = ""
    system: Optional[str] = None
    template: Optional[str] = None
    context: Optional[List[int]] = Field(None, description="Context returned by a previous generate call")
    images: Optional[List[str]] = None
    raw: Optional[bool] = None
    format: Optional[Union[Literal["json"], Dict[str, Any]]] = None
    options: Optional[CompletionOptions] = None
    keep_alive: Optional[Union[str, int]] = None

    def to_body(self) -> Dict[str, Any]:
        """Serialize into the JSON body sent to the server."""
        body = self.model_dump(mode="json", exclude_none=True, exclude={"options"})
        if self.options is not None:
            body["options"] = self.options.model_dump(exclude_none=True)
        body["stream"] = True
        return body


class _StreamedResponse(BaseModel):
    """Fields shared by every streamed Ollama record."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(..., description="Model that produced the chunk")
    created_at: str = Field(..., description="RFC 3339 timestamp reported by the server")
    done: bool = Field(..., description="True on the final chunk of the stream")
    done_reason: Optional[str] = Field(None, description="Why generation stopped, on the final chunk")

    # timing & usage, reported on the final chunk (durations in nanoseconds)
    total_duration: Optional[int] = None
    load_duration: Optional[int] = None
    prompt_eval_count: Optional[int] = None
    prompt_eval_duration: Optional[int] = None
    eval_count: Optional[int] = None
    eval_duration: Optional[int] = None

    def tokens_per_second(self) -> Optional[float]:
        """Generation speed computed from ``eval_count`` and ``eval_duration``."""
        if not self.eval_count or not self.eval_duration:
            return None
        return self.eval_count / (self.eval_duration / 1e9)


class ChatResponse(_StreamedResponse):
    """One decoded line of a ``/api/chat`` stream."""

    message: Optional[Message] = Field(None, description="Partial assistant message carried by this chunk")

    @property
    def content(self) -> str:
        """Text carried by this chunk, empty when there is none."""
        if self.message is None:
            return ""
        return self.message.content


class GenerateResponse(_StreamedResponse):
    """One decoded line of a ``/api/generate`` stream."""

    response: str = ""
    context: Optional[List[int]] = None

    @property
    def text(self) -> str:
        return self.response


__all__ = [
    "Message",
    "ToolSpec",
    "CompletionOptions",
    "ChatRequestData",
    "GenerateRequestData",
    "ChatResponse",
    "GenerateResponse",
]
