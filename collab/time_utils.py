from __future__ import annotations
# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0

"""Clock helpers.  Every timestamp Collab stores is an aware UTC datetime."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Attach UTC to a naive *dt*; aware values pass through unchanged."""
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def seconds_since(dt: datetime, now: datetime | None = None) -> float:
    """Elapsed seconds from *dt* to *now* (the current time by default).

    Used for heartbeat staleness and uptime.
    """
    end = ensure_aware(now) if now is not None else now_utc()
    return (end - ensure_aware(dt)).total_seconds()
