"""Minimal server-sent-events reader for upstream LLM streams."""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx

DONE_SENTINEL = "[DONE]"


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
    """
    Yield the payload of every `data:` line.

    httpx 按换行增量切分（跨网络分块的半行会被缓冲到下一块），
    注释行、`event:`/`id:` 行和空行都被忽略。
    """
    async for line in response.aiter_lines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data:
            yield data


__all__ = ["DONE_SENTINEL", "iter_sse_data"]
