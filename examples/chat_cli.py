"""Usage: python examples/chat_cli.py -q 'Why is the sky blue?' [--push] [-i photo.png]."""

from __future__ import annotations

import argparse
import asyncio
import base64
import logging

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import start_http_server

from ollamakit import (
    ChatRequestData,
    ClientConfig,
    CompletionOptions,
    Message,
    OllamaKit,
    load_config,
)


def encode_image(path: str) -> str:
    """Return the base64 payload Ollama expects for *path*."""
    with open(path, "rb") as fh:
        return base64.b64encode(fh.read()).decode("ascii")


def setup_observability(port: int = 8000) -> None:
    """Start Prometheus metrics server and configure console tracing."""
    start_http_server(port)
    provider = TracerProvider()
    provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)


async def run_pull(kit: OllamaKit, data: ChatRequestData) -> None:
    async with kit.chat(data) as stream:
        async for chunk in stream:
            print(chunk.content, end="", flush=True)
            if chunk.done:
                print()
                logging.info("%s tokens/s", chunk.tokens_per_second())


async def run_push(kit: OllamaKit, data: ChatRequestData) -> None:
    subscription = kit.chat_publisher(data).subscribe(
        on_next=lambda chunk: print(chunk.content, end="", flush=True),
        on_completed=lambda: print(),
        on_error=lambda e: logging.error("stream failed: %s", e),
    )
    await subscription.wait()


async def main() -> None:
    """Run the command-line interface."""
    parser = argparse.ArgumentParser(description="Chat with an Ollama model")
    parser.add_argument("-q", "--query", required=True, help="Query text to send")
    parser.add_argument("-i", "--image", action="append", help="Image to attach (may repeat)")
    parser.add_argument("-s", "--system", help="System prompt")
    parser.add_argument("--model", default="llama3", help="Model name (default: llama3)")
    parser.add_argument("--temperature", type=float, help="Sampling temperature")
    parser.add_argument("--base-url", help="Ollama server URL (default: $OLLAMA_HOST or localhost)")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--push", action="store_true", help="Consume through the publisher")
    parser.add_argument("--debug", action="store_true", help="Log requests as curl commands")
    parser.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics and console traces")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")
    if args.metrics_port:
        setup_observability(args.metrics_port)

    cfg = load_config(args.config) if args.config else ClientConfig()
    messages: list[Message] = []
    if args.system:
        messages.append(Message.create_system(args.system))
    images = [encode_image(path) for path in args.image or []]
    messages.append(Message.create_user(args.query, images=images or None))

    options = CompletionOptions(temperature=args.temperature) if args.temperature is not None else None
    data = ChatRequestData(model=args.model, messages=messages, options=options)

    async with OllamaKit(cfg, base_url=args.base_url, is_debug=args.debug) as kit:
        if args.push:
            await run_push(kit, data)
        else:
            try:
                await run_pull(kit, data)
            except Exception as e:
                logging.error("stream failed: %s", e)


if __name__ == "__main__":
    asyncio.run(main())
