# tests/test_sse.py

from __future__ import annotations

import pytest

from scandash.sync.sse import SseFrame, SseParser, iter_frames

STREAM = (
    ": keep-alive\n"
    "event: user_snapshot\n"
    "id: 41\n"
    'data: {"type": "user_snapshot",\n'
    'data:  "tasks": []}\n'
    "\n"
    "data: second\r\n"
    "\r\n"
    "id: 43\r"
    "data:third\r"
    "\r"
)

EXPECTED = [
    SseFrame(event="user_snapshot", id="41", data='{"type": "user_snapshot",\n "tasks": []}'),
    SseFrame(event=None, id=None, data="second"),
    SseFrame(event=None, id="43", data="third"),
]


def _feed_all(parser: SseParser, chunks: list[str]) -> list[SseFrame]:
    out: list[SseFrame] = []
    for c in chunks:
        out.extend(parser.feed(c))
    return out


def test_whole_stream_decodes_all_frames() -> None:
    assert _feed_all(SseParser(), [STREAM]) == EXPECTED


def test_any_two_way_split_yields_same_frames() -> None:
    for i in range(len(STREAM) + 1):
        frames = _feed_all(SseParser(), [STREAM[:i], STREAM[i:]])
        assert frames == EXPECTED, f"split at {i}"


def test_char_by_char_feed_yields_same_frames() -> None:
    assert _feed_all(SseParser(), list(STREAM)) == EXPECTED


def test_incomplete_frame_stays_buffered() -> None:
    p = SseParser()
    assert p.feed("data: partial\n") == []
    assert p.feed("data: more") == []
    assert p.feed("\n\n") == [SseFrame(event=None, id=None, data="partial\nmore")]


def test_comment_only_and_blank_lines_dispatch_nothing() -> None:
    p = SseParser()
    assert p.feed(": ping\n\n\n: another\n\n") == []


def test_only_one_leading_space_is_stripped() -> None:
    p = SseParser()
    assert p.feed("data:   indented\n\n") == [SseFrame(event=None, id=None, data="  indented")]


def test_unknown_fields_and_retry_are_ignored() -> None:
    p = SseParser()
    frames = p.feed("retry: 5000\nfoo: bar\ndata: x\n\n")
    assert frames == [SseFrame(event=None, id=None, data="x")]


@pytest.mark.asyncio
async def test_iter_frames_over_async_chunks() -> None:
    async def chunks():
        yield STREAM[:10]
        yield STREAM[10:55]
        yield STREAM[55:]

    frames = [f async for f in iter_frames(chunks())]
    assert frames == EXPECTED
