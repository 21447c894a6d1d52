"""
Line framing for worker output channels (newline-delimited records).
"""

# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────
DEFAULT_CHUNK_SIZE = 64 * 1024


class StreamFramer:
    """
    Split an arbitrary sequence of byte chunks into complete text lines.

    Chunks may cut a line (or a multi-byte UTF-8 character) anywhere; the
    unterminated tail is buffered until its ``\\n`` arrives.  Nothing is
    assumed about chunk sizes.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding
        self._pending = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes received after the last line terminator."""
        return bytes(self._pending)

    def feed(self, chunk: bytes) -> list[str]:
        """Consume *chunk* and return every line it completes."""
        if not chunk:
            return []
        self._pending.extend(chunk)
        if b"\n" not in chunk:
            return []

        *complete, tail = self._pending.split(b"\n")
        self._pending = bytearray(tail)
        return [self._decode(raw) for raw in complete]

    def close(self) -> list[str]:
        """Signal end of stream.

        An unterminated trailing fragment is a protocol violation and is
        dropped, not reported as a line.
        """
        if self._pending:
            logger.debug(
                "Discarding unterminated fragment at EOF (%d bytes)",
                len(self._pending),
            )
            self._pending.clear()
        return []

    def _decode(self, raw: bytes) -> str:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return raw.decode(self.encoding, errors="replace")


async def iter_lines(
    reader: asyncio.StreamReader,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> AsyncIterator[str]:
    """Lazily yield complete lines from *reader* until EOF."""
    framer = StreamFramer()
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            break
        for line in framer.feed(chunk):
            yield line
    framer.close()
