"""Pull and push consumers over a single stream session.

Both shapes consume the same tagged event source produced by
:meth:`StreamingHTTPClient.events`, so fetching and decoding live in one
place.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any, Generic, Optional, Protocol, TypeVar, Union

from .events import StreamEvent, StreamEventType

T = TypeVar("T")

logger = logging.getLogger("ollamakit")

EventSource = Callable[[], AsyncGenerator[StreamEvent[T], None]]
Callback = Callable[..., Union[None, Awaitable[None]]]


class ResponseStream(Generic[T]):
    """Single-pass async iterator over the chunks of one stream session.

    The session is opened lazily on the first advance. Once the stream
    reaches a terminal state, every further advance reports that state
    again: ``StopAsyncIteration`` after completion, or the same error
    object after a failure.

    Leaving an ``async for`` loop early does not close the connection at
    the break. Use ``async with`` or call :meth:`aclose` to release it
    right away; otherwise it is released only once the stream is garbage
    collected and the event loop finalizes the abandoned session.
    """

    def __init__(self, source: EventSource[T]) -> None:
        self._source = source
        self._events: Optional[AsyncGenerator[StreamEvent[T], None]] = None
        self._terminal: Optional[StreamEvent[T]] = None

    def __aiter__(self) -> "ResponseStream[T]":
        return self

    async def __anext__(self) -> T:
        if self._terminal is None:
            if self._events is None:
                self._events = self._source()
            try:
                event = await self._events.__anext__()
            except StopAsyncIteration:
                # a source always ends with a terminal event, treat a bare end as completion
                event = StreamEvent.completed()
            if event.event_type is StreamEventType.NEXT:
                return event.value  # type: ignore[return-value]
            self._terminal = event
            await self._release()

        if self._terminal.event_type is StreamEventType.FAILED:
            raise self._terminal.error  # type: ignore[misc]
        raise StopAsyncIteration

    @property
    def done(self) -> bool:
        """True once a terminal state has been reached or the stream was closed."""
        return self._terminal is not None

    async def aclose(self) -> None:
        """Stop consuming and release the connection.

        A closed stream behaves as completed for further advances.
        """
        if self._terminal is None:
            self._terminal = StreamEvent.completed()
        await self._release()

    async def _release(self) -> None:
        if self._events is not None:
            events, self._events = self._events, None
            await events.aclose()

    async def collect(self) -> list[T]:
        """Consume the whole stream into a list, raising on failure."""
        return [item async for item in self]

    async def __aenter__(self) -> "ResponseStream[T]":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


class Observer(Protocol[T]):
    """Receiver for push-style stream events."""

    def on_next(self, value: T) -> Union[None, Awaitable[None]]: ...

    def on_completed(self) -> Union[None, Awaitable[None]]: ...

    def on_error(self, error: BaseException) -> Union[None, Awaitable[None]]: ...


class Subscription:
    """Handle for one subscriber attached to a :class:`ResponsePublisher`."""

    def __init__(
        self,
        publisher: "ResponsePublisher[Any]",
        on_next: Optional[Callback],
        on_completed: Optional[Callback],
        on_error: Optional[Callback],
    ) -> None:
        self._publisher = publisher
        self._on_next = on_next
        self._on_completed = on_completed
        self._on_error = on_error
        self._closed = asyncio.Event()

    @property
    def active(self) -> bool:
        return not self._closed.is_set()

    def cancel(self) -> None:
        """Detach from the publisher; no further events are delivered."""
        if not self.active:
            return
        self._closed.set()
        self._publisher._detach(self)

    # alias matching the reactive naming
    unsubscribe = cancel

    async def wait(self) -> None:
        """Wait until this subscription has received its terminal event or was cancelled."""
        await self._closed.wait()

    async def _deliver(self, event: StreamEvent[Any]) -> None:
        if not self.active:
            return
        if event.event_type is StreamEventType.NEXT:
            callback, args = self._on_next, (event.value,)
        elif event.event_type is StreamEventType.COMPLETED:
            callback, args = self._on_completed, ()
        else:
            callback, args = self._on_error, (event.error,)

        try:
            if callback is not None:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            elif event.event_type is StreamEventType.FAILED:
                logger.warning(f"stream failed with no error handler attached: {event.error!r}")
        except Exception:
            logger.exception(f"subscriber callback for {event.event_type.value} event raised, detaching it")
            self.cancel()
        finally:
            if event.is_terminal:
                # at most one terminal event per subscription
                self._closed.set()


class ResponsePublisher(Generic[T]):
    """Push-style view of one stream session.

    The session starts when the first subscriber attaches and is shared by
    every subscriber; it is never re-issued. Events are delivered in order,
    one callback at a time, on the event loop that was running when the
    session started. When every subscriber has cancelled before the end,
    the session is cancelled and its connection released.
    """

    def __init__(self, source: EventSource[T]) -> None:
        self._source = source
        self._subscribers: list[Subscription] = []
        self._task: Optional[asyncio.Task[None]] = None
        self._terminal: Optional[StreamEvent[T]] = None
        self._replays: set[asyncio.Task[None]] = set()
        self._delivering = False

    def subscribe(
        self,
        on_next: Optional[Callable[[T], Union[None, Awaitable[None]]]] = None,
        on_completed: Optional[Callable[[], Union[None, Awaitable[None]]]] = None,
        on_error: Optional[Callable[[BaseException], Union[None, Awaitable[None]]]] = None,
        *,
        observer: Optional[Observer[T]] = None,
    ) -> Subscription:
        """Attach a subscriber and start the session if it isn't running yet.

        Must be called with a running event loop. Callbacks may be plain
        functions or coroutine functions.
        """
        if observer is not None:
            on_next = on_next or observer.on_next
            on_completed = on_completed or observer.on_completed
            on_error = on_error or observer.on_error

        loop = asyncio.get_running_loop()
        subscription = Subscription(self, on_next, on_completed, on_error)

        if self._terminal is not None:
            # late subscriber: replay only the terminal event
            replay = loop.create_task(subscription._deliver(self._terminal))
            self._replays.add(replay)
            replay.add_done_callback(self._replays.discard)
            return subscription

        self._subscribers.append(subscription)
        if self._task is None:
            self._task = loop.create_task(self._pump())
        return subscription

    @property
    def done(self) -> bool:
        return self._terminal is not None

    async def wait(self) -> None:
        """Wait for the session to finish, if it was started."""
        if self._task is not None:
            try:
                await asyncio.shield(self._task)
            except asyncio.CancelledError:
                if not self._task.cancelled():
                    raise

    async def _pump(self) -> None:
        events = self._source()
        try:
            async for event in events:
                if event.is_terminal and self._terminal is None:
                    self._terminal = event
                self._delivering = True
                try:
                    for subscription in list(self._subscribers):
                        await subscription._deliver(event)
                finally:
                    self._delivering = False
                if event.is_terminal or not self._subscribers:
                    # everyone left during delivery: stop before decoding the next line
                    break
        finally:
            for subscription in self._subscribers:
                subscription._closed.set()
            self._subscribers.clear()
            await events.aclose()

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
        if self._terminal is None and not self._subscribers and self._task is not None:
            self._terminal = StreamEvent.completed()
            if not self._delivering:
                # the pump is waiting on the transport, interrupt it there
                self._task.cancel()
