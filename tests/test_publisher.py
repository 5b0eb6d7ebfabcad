"""Push-style consumption through ``OllamaKit.chat_publisher``."""

import asyncio
import functools

import httpx
import pytest
from mock_transport import NDJSONTransport, chat_line
from prometheus_client import REGISTRY

from ollamakit import (
    ChatRequestData,
    ChatResponse,
    ClientConfig,
    DecodeError,
    Message,
    OllamaKit,
    OllamaRouter,
    RequestConstructionError,
    ResponseDecoder,
    ResponsePublisher,
    StreamingHTTPClient,
)

DATA = ChatRequestData(model="llama3", messages=[Message.create_user("hello")])


def make_kit(transport: httpx.MockTransport, **cfg) -> OllamaKit:
    cfg.setdefault("base_url", "http://ollama.test")
    return OllamaKit(ClientConfig(**cfg), client=httpx.AsyncClient(transport=transport))


class RecordingObserver:
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def on_next(self, value) -> None:
        self.events.append(("next", value.content))

    def on_completed(self) -> None:
        self.events.append(("completed",))

    def on_error(self, error) -> None:
        self.events.append(("failed", error))


@pytest.mark.asyncio
async def test_emits_chunks_then_completion():
    transport = NDJSONTransport.lines([chat_line("a"), "", chat_line("b"), chat_line("c", done=True)])
    kit = make_kit(transport)
    observer = RecordingObserver()

    subscription = kit.chat_publisher(DATA).subscribe(observer=observer)
    await subscription.wait()

    assert observer.events == [("next", "a"), ("next", "b"), ("next", "c"), ("completed",)]
    assert not subscription.active
    assert transport.streams[0].closed


@pytest.mark.asyncio
async def test_malformed_line_emits_single_failure():
    transport = NDJSONTransport.lines([chat_line("a"), "garbage", chat_line("b")])
    kit = make_kit(transport)
    observer = RecordingObserver()

    subscription = kit.chat_publisher(DATA).subscribe(observer=observer)
    await subscription.wait()

    assert observer.events[0] == ("next", "a")
    assert len(observer.events) == 2
    kind, error = observer.events[1]
    assert kind == "failed"
    assert isinstance(error, DecodeError)


@pytest.mark.asyncio
async def test_construction_failure_is_sole_event():
    transport = NDJSONTransport.lines([chat_line("a")])
    kit = make_kit(transport, base_url="ftp://nowhere")
    observer = RecordingObserver()

    publisher = kit.chat_publisher(DATA)  # must not raise
    subscription = publisher.subscribe(observer=observer)
    await subscription.wait()

    assert len(observer.events) == 1
    assert observer.events[0][0] == "failed"
    assert isinstance(observer.events[0][1], RequestConstructionError)
    assert transport.requests == []


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited_in_order():
    transport = NDJSONTransport.lines([chat_line(str(i)) for i in range(5)])
    kit = make_kit(transport)
    seen = []
    in_flight = 0

    async def on_next(chunk):
        nonlocal in_flight
        in_flight += 1
        assert in_flight == 1
        await asyncio.sleep(0.001)
        seen.append(chunk.content)
        in_flight -= 1

    done = asyncio.Event()
    subscription = kit.chat_publisher(DATA).subscribe(on_next=on_next, on_completed=done.set)
    await subscription.wait()

    assert seen == ["0", "1", "2", "3", "4"]
    assert done.is_set()


@pytest.mark.asyncio
async def test_multiple_subscribers_share_one_request():
    transport = NDJSONTransport.lines([chat_line("a"), chat_line("b", done=True)])
    kit = make_kit(transport)
    publisher = kit.chat_publisher(DATA)
    first, second = RecordingObserver(), RecordingObserver()

    sub1 = publisher.subscribe(observer=first)
    sub2 = publisher.subscribe(observer=second)
    await asyncio.gather(sub1.wait(), sub2.wait())

    expected = [("next", "a"), ("next", "b"), ("completed",)]
    assert first.events == expected
    assert second.events == expected
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_late_subscriber_gets_terminal_event_only():
    transport = NDJSONTransport.lines([chat_line("a")])
    kit = make_kit(transport)
    publisher = kit.chat_publisher(DATA)

    await publisher.subscribe(observer=RecordingObserver()).wait()
    assert publisher.done

    late = RecordingObserver()
    await publisher.subscribe(observer=late).wait()
    assert late.events == [("completed",)]
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_unsubscribe_releases_connection():
    transport = NDJSONTransport.lines([chat_line(str(i)) for i in range(10)])
    kit = make_kit(transport)
    received = []
    subscription = None

    def on_next(chunk):
        received.append(chunk.content)
        if chunk.content == "2":
            subscription.cancel()

    publisher = kit.chat_publisher(DATA)
    subscription = publisher.subscribe(on_next=on_next)
    await subscription.wait()
    await publisher.wait()

    assert received == ["0", "1", "2"]
    assert transport.streams[0].closed
    assert transport.streams[0].sent == 3


@pytest.mark.asyncio
async def test_remaining_subscriber_keeps_stream_alive():
    transport = NDJSONTransport.lines([chat_line(str(i)) for i in range(4)])
    kit = make_kit(transport)
    publisher = kit.chat_publisher(DATA)
    quitter_seen = []
    stayer = RecordingObserver()

    def quitter(chunk):
        quitter_seen.append(chunk.content)
        quitter_sub.cancel()

    quitter_sub = publisher.subscribe(on_next=quitter)
    stayer_sub = publisher.subscribe(observer=stayer)
    await stayer_sub.wait()

    assert quitter_seen == ["0"]
    assert [e[1] for e in stayer.events if e[0] == "next"] == ["0", "1", "2", "3"]
    assert stayer.events[-1] == ("completed",)


@pytest.mark.asyncio
async def test_raising_callback_is_detached():
    transport = NDJSONTransport.lines([chat_line("a"), chat_line("b")])
    kit = make_kit(transport)
    publisher = kit.chat_publisher(DATA)
    calls = []

    def broken(chunk):
        calls.append(chunk.content)
        raise RuntimeError("boom")

    broken_sub = publisher.subscribe(on_next=broken)
    healthy = RecordingObserver()
    healthy_sub = publisher.subscribe(observer=healthy)
    await healthy_sub.wait()

    assert calls == ["a"]
    assert not broken_sub.active
    assert healthy.events == [("next", "a"), ("next", "b"), ("completed",)]


@pytest.mark.asyncio
async def test_nothing_is_sent_before_subscribe():
    transport = NDJSONTransport.lines([chat_line("a")])
    kit = make_kit(transport)

    publisher = kit.chat_publisher(DATA)
    await asyncio.sleep(0.01)
    assert transport.requests == []
    await publisher.wait()
    assert not publisher.done


class CountingDecoder(ResponseDecoder):
    def __init__(self) -> None:
        super().__init__(ChatResponse)
        self.calls = 0

    def decode(self, line):
        self.calls += 1
        return super().decode(line)


@pytest.mark.asyncio
async def test_cancel_stops_decoding_buffered_lines():
    def sample(result):
        return REGISTRY.get_sample_value(
            "ollamakit_stream_sessions_total", {"endpoint": "/api/chat", "result": result}
        ) or 0.0

    # the whole body arrives in one chunk, so every line is already buffered
    body = "\n".join([chat_line(str(i)) for i in range(10)] + ["{broken"]) + "\n"
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=body.encode()))
    client = StreamingHTTPClient(httpx.AsyncClient(transport=transport))
    router = OllamaRouter(ClientConfig(base_url="http://ollama.test"))
    decoder = CountingDecoder()
    publisher = ResponsePublisher(functools.partial(client.events, lambda: router.chat(DATA), decoder))
    cancelled_before, error_before = sample("cancelled"), sample("error")
    received = []
    subscription = None

    def on_next(chunk):
        received.append(chunk.content)
        if chunk.content == "2":
            subscription.cancel()

    subscription = publisher.subscribe(on_next=on_next, on_error=received.append)
    await publisher.wait()

    assert received == ["0", "1", "2"]
    assert decoder.calls == 3
    assert sample("cancelled") == cancelled_before + 1
    assert sample("error") == error_before

    late = RecordingObserver()
    await publisher.subscribe(observer=late).wait()
    assert late.events == [("completed",)]
