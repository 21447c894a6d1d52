"""
Streaming JSON Lines protocol spoken by worker processes.

Inbound records (worker -> supervisor) carry ``type`` in
{system, assistant, user, result}.  Outbound records (supervisor ->
worker) are user turns.
"""

# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


# ── Record Kinds ──────────────────────────────────────────────────

class RecordKind(Enum):
    """Classification of a decoded inbound record."""
    INIT = "init"                  # system/init carrying a session id
    ASSISTANT = "assistant"        # assistant turn content
    RESULT = "result"              # end of a turn
    UNRECOGNIZED = "unrecognized"  # valid record, no lifecycle meaning


@dataclass
class ProtocolRecord:
    """A decoded inbound record plus the fields the supervisor acts on."""

    kind: RecordKind
    raw: dict[str, Any]
    session_id: str | None = None
    texts: list[str] = field(default_factory=list)
    result: str | None = None
    duration_ms: float | None = None

    @property
    def record_type(self) -> str | None:
        value = self.raw.get("type")
        return value if isinstance(value, str) else None


# ── Inbound ──────────────────────────────────────────────────────

def decode_record(line: str) -> dict[str, Any] | None:
    """Parse *line* as a JSON object, or return None for plain text."""
    try:
        data = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def classify_line(line: str) -> ProtocolRecord | None:
    """Decode and classify one output line.

    Returns:
        The classified record, or None when the line is not a protocol
        record and should be kept as diagnostic text.
    """
    data = decode_record(line)
    if data is None:
        return None
    return classify_record(data)


def classify_record(data: dict[str, Any]) -> ProtocolRecord:
    """Classify an already-decoded record."""
    record_type = data.get("type")

    if record_type == "system" and data.get("subtype") == "init":
        session_id = data.get("session_id")
        if isinstance(session_id, str) and session_id:
            return ProtocolRecord(
                kind=RecordKind.INIT, raw=data, session_id=session_id,
            )

    elif record_type == "assistant":
        return ProtocolRecord(
            kind=RecordKind.ASSISTANT, raw=data, texts=_extract_texts(data),
        )

    elif record_type == "result":
        result = data.get("result")
        duration = data.get("duration_ms")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            duration = None
        return ProtocolRecord(
            kind=RecordKind.RESULT,
            raw=data,
            result=result if isinstance(result, str) else None,
            duration_ms=duration,
        )

    return ProtocolRecord(kind=RecordKind.UNRECOGNIZED, raw=data)


def _extract_texts(data: dict[str, Any]) -> list[str]:
    """Pull text segments out of ``message.content[]``."""
    message = data.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    texts: list[str] = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "text":
            continue
        text = block.get("text")
        if isinstance(text, str) and text:
            texts.append(text)
    return texts


# ── Outbound ─────────────────────────────────────────────────────

def build_user_message(text: str) -> dict[str, Any]:
    """Build the user-turn record for *text*."""
    return {
        "type": "user",
        "message": {
            "role": "user",
            "content": [{"type": "text", "text": text}],
        },
    }


def encode_user_message(text: str) -> bytes:
    """Serialize a user turn as one newline-terminated JSON line."""
    line = json.dumps(build_user_message(text), ensure_ascii=False)
    return (line + "\n").encode("utf-8")
