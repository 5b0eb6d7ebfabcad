import pytest

from ollamakit import ChatResponse, DecodeError, GenerateResponse, ResponseDecoder, ServerError


def test_decode_chat_chunk():
    decoder = ResponseDecoder(ChatResponse)
    chunk = decoder.decode(
        '{"model":"llama3","created_at":"2024-01-02T10:00:00Z",'
        '"message":{"role":"assistant","content":"Hi"},"done":false}'
    )
    assert isinstance(chunk, ChatResponse)
    assert chunk.content == "Hi"
    assert chunk.done is False
    assert chunk.message.role == "assistant"


def test_decode_final_chunk_metadata():
    decoder = ResponseDecoder(ChatResponse)
    chunk = decoder.decode(
        b'{"model":"llama3","created_at":"2024-01-02T10:00:00Z","message":{"role":"assistant","content":""},'
        b'"done":true,"done_reason":"stop","eval_count":20,"eval_duration":2000000000,"new_field":1}\n'
    )
    assert chunk.done is True
    assert chunk.done_reason == "stop"
    assert chunk.tokens_per_second() == pytest.approx(10.0)


@pytest.mark.parametrize("line", ["", "   ", "\r\n", b"\n"])
def test_blank_lines_are_skipped(line):
    assert ResponseDecoder(ChatResponse).decode(line) is None


@pytest.mark.parametrize(
    "line",
    [
        "{not json",
        "[1, 2, 3]",
        '"just a string"',
        '{"model": "llama3", "done": false}',
        '{"model": "llama3", "created_at": "now", "done": "maybe"}',
    ],
)
def test_malformed_lines_raise_decode_error(line):
    with pytest.raises(DecodeError) as info:
        ResponseDecoder(ChatResponse).decode(line)
    assert info.value.line == line.strip()
    assert info.value.cause is not None


def test_error_record_raises_server_error():
    with pytest.raises(ServerError) as info:
        ResponseDecoder(ChatResponse).decode('{"error": "model is loading"}')
    assert info.value.message == "model is loading"
    assert "model is loading" in str(info.value)
    assert isinstance(info.value, DecodeError)


def test_invalid_utf8_raises_decode_error():
    with pytest.raises(DecodeError):
        ResponseDecoder(ChatResponse).decode(b"\xff\xfe{}")


def test_generate_decoder():
    chunk = ResponseDecoder(GenerateResponse).decode(
        '{"model":"llama3","created_at":"2024-01-02T10:00:00Z","response":"The","done":false}'
    )
    assert chunk.text == "The"
    assert chunk.context is None


def test_decoded_chunks_are_immutable():
    chunk = ResponseDecoder(ChatResponse).decode('{"model":"m","created_at":"t","done":false}')
    with pytest.raises(Exception):
        chunk.done = True
