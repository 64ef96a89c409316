"""Minimal demonstration of streaming a reply from the configured provider."""

import asyncio
import sys

from vaultbot_core.api.service import stream_prompt


async def main(question: str) -> None:
    print("User:", question)
    print("Assistant: ", end="", flush=True)
    await stream_prompt(question, lambda text: print(text, end="", flush=True))
    print()


if __name__ == "__main__":
    asyncio.run(main(" ".join(sys.argv[1:]) or "请用三句话总结 Markdown 的基本语法"))
