"""Tagged stream events shared by the pull and push consumers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class StreamEventType(str, Enum):
    """Kinds of events a stream session produces."""

    NEXT = "next"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StreamEvent(Generic[T]):
    """One step of a stream session.

    A session yields any number of ``NEXT`` events followed by exactly one
    terminal event, ``COMPLETED`` or ``FAILED``.
    """

    event_type: StreamEventType
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def next(cls, value: T) -> "StreamEvent[T]":
        return cls(StreamEventType.NEXT, value=value)

    @classmethod
    def completed(cls) -> "StreamEvent[T]":
        return cls(StreamEventType.COMPLETED)

    @classmethod
    def failed(cls, error: BaseException) -> "StreamEvent[T]":
        return cls(StreamEventType.FAILED, error=error)

    @property
    def is_terminal(self) -> bool:
        return self.event_type is not StreamEventType.NEXT
