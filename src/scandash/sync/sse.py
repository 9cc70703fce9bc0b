# src/scandash/sync/sse.py

"""
Server-sent-event frame decoding.

The parser is incremental: feed it text chunks exactly as they come off the
wire and it returns whatever frames those chunks completed. Anything that does
not end in a line break yet stays buffered until the next chunk.

One parser per connection attempt: a half-read frame from a dropped stream
must never leak into the next stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class SseFrame:
    event: str | None
    id: str | None
    data: str


class SseParser:
    """
    Streaming-safe SSE framer.
    Works across chunk boundaries, including a CRLF split between two reads.
    """

    def __init__(self) -> None:
        self._buf = ""
        self._pending_cr = False

        self._event: str | None = None
        self._id: str | None = None
        self._data: list[str] = []
        self._has_fields = False

    def feed(self, chunk: str) -> list[SseFrame]:
        if not chunk:
            return []

        if self._pending_cr:
            # Previous chunk ended with "\r"; a leading "\n" here belongs to it.
            self._pending_cr = False
            if chunk.startswith("\n"):
                chunk = chunk[1:]

        self._buf += chunk
        frames: list[SseFrame] = []

        while self._buf:
            i_n = self._buf.find("\n")
            i_r = self._buf.find("\r")

            if i_n == -1 and i_r == -1:
                break

            if i_r != -1 and (i_n == -1 or i_r < i_n):
                line = self._buf[:i_r]
                rest = self._buf[i_r + 1 :]
                if rest.startswith("\n"):
                    rest = rest[1:]
                elif not rest:
                    self._pending_cr = True
                self._buf = rest
            else:
                line = self._buf[:i_n]
                self._buf = self._buf[i_n + 1 :]

            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)

        return frames

    def _process_line(self, line: str) -> SseFrame | None:
        if line == "":
            return self._dispatch()

        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            self._id = value
        else:
            # retry: and unknown fields are ignored.
            return None

        self._has_fields = True
        return None

    def _dispatch(self) -> SseFrame | None:
        if not self._has_fields:
            return None

        frame = SseFrame(
            event=self._event or None,
            id=self._id or None,
            data="\n".join(self._data),
        )
        self._event = None
        self._id = None
        self._data = []
        self._has_fields = False
        return frame


async def iter_frames(chunks: AsyncIterable[str]) -> AsyncIterator[SseFrame]:
    """Lazily decode frames from an async stream of text chunks (e.g. httpx aiter_text)."""
    parser = SseParser()
    async for chunk in chunks:
        for frame in parser.feed(chunk):
            yield frame
