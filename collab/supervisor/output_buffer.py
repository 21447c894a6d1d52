# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0
"""Bounded buffer of a worker's most recent output lines."""

from __future__ import annotations

from collections import deque

DEFAULT_CAPACITY = 100


class OutputBuffer:
    """Fixed-capacity FIFO of text lines; the oldest line is evicted first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._lines: deque[str] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._lines.maxlen or 0

    def push(self, line: str) -> None:
        self._lines.append(line)

    def snapshot(self) -> list[str]:
        """Return a copy of the buffered lines in insertion order."""
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)
