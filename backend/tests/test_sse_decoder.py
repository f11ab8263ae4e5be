from __future__ import annotations

import asyncio
import json

from analyst.services.sse import iter_sse_data


async def _chunks(parts: list[bytes]):
    for part in parts:
        yield part


def _decode(parts: list[bytes]) -> list[str]:
    async def _collect() -> list[str]:
        return [payload async for payload in iter_sse_data(_chunks(parts))]

    return asyncio.run(_collect())


def _split_every(raw: bytes, size: int) -> list[bytes]:
    return [raw[idx : idx + size] for idx in range(0, len(raw), size)]


_STREAM = (
    "event: content_block_start\n"
    'data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}\n'
    "\n"
    "event: content_block_delta\n"
    'data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Prezzo €185 📈"}}\n'
    "\n"
    ": keep-alive comment\n"
    'data: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":9}}\n'
    "\n"
    "data: [DONE]\n"
).encode("utf-8")


def test_only_data_payloads_are_yielded_and_done_sentinel_is_dropped():
    payloads = _decode([_STREAM])
    assert len(payloads) == 3
    assert [json.loads(item)["type"] for item in payloads] == [
        "content_block_start",
        "content_block_delta",
        "message_delta",
    ]


def test_chunk_boundaries_do_not_change_payloads():
    expected = _decode([_STREAM])
    for size in range(1, 40):
        assert _decode(_split_every(_STREAM, size)) == expected


def test_multibyte_characters_split_across_chunks_survive():
    payloads = _decode(_split_every(_STREAM, 1))
    assert json.loads(payloads[1])["delta"]["text"] == "Prezzo €185 📈"


def test_final_unterminated_fragment_is_flushed():
    raw = b'data: {"a": 1}\n\ndata: {"b": 2}'
    assert _decode([raw[:5], raw[5:]]) == ['{"a": 1}', '{"b": 2}']


def test_crlf_framing_and_prefix_without_space():
    raw = b'data:{"a": 1}\r\n\r\ndata: {"b": 2}\r\n'
    assert _decode([raw]) == ['{"a": 1}', '{"b": 2}']


def test_empty_chunks_and_empty_stream():
    assert _decode([]) == []
    assert _decode([b"", b"data: x\n", b""]) == ["x"]
