"""Minimal example streaming a chat completion from a local Ollama server."""

import asyncio
import os

from ollamakit import ChatRequestData, Message, OllamaKit


async def main() -> None:
    """Ask a question and print the answer as it streams in."""
    data = ChatRequestData(
        model=os.getenv("MODEL_NAME", "llama3"),
        messages=[Message.create_user("Write a haiku about autumn.")],
    )
    async with OllamaKit() as kit:
        async for chunk in kit.chat(data):
            print(chunk.content, end="", flush=True)
    print()


if __name__ == "__main__":
    asyncio.run(main())
