from __future__ import annotations

import codecs
from typing import AsyncIterable, AsyncIterator

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def _data_payload(line: str) -> str | None:
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    payload = payload.strip()
    if not payload or payload == DONE_SENTINEL:
        return None
    return payload


async def iter_sse_data(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield the `data:` payloads of an event stream, in arrival order.

    Chunks may split lines (and multi-byte characters) anywhere; the incomplete
    trailing fragment of each chunk is carried into the next one and flushed when
    the upstream closes. Non-data lines and the `[DONE]` sentinel are dropped.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        if not chunk:
            continue
        buffer += decoder.decode(chunk)
        lines = buffer.split("\n")
        buffer = lines.pop()
        for line in lines:
            payload = _data_payload(line)
            if payload is not None:
                yield payload

    buffer += decoder.decode(b"", final=True)
    if buffer:
        payload = _data_payload(buffer)
        if payload is not None:
            yield payload
