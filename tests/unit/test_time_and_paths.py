# Collab - Worker Supervisor
# Copyright (C) 2026 Collab Authors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for time helpers and data directory resolution."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from collab.paths import get_data_dir, get_log_dir
from collab.time_utils import ensure_aware, now_utc, seconds_since


class TestTimeUtils:
    def test_now_utc_is_aware(self):
        assert now_utc().tzinfo is timezone.utc

    def test_ensure_aware_treats_naive_as_utc(self):
        naive = datetime(2026, 1, 1, 12, 0)
        assert ensure_aware(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_seconds_since(self):
        start = now_utc()
        assert seconds_since(start, start + timedelta(seconds=42)) == 42.0

    def test_seconds_since_mixed_naive_and_aware(self):
        start = datetime(2026, 1, 1, 12, 0)
        now = datetime(2026, 1, 1, 12, 1, tzinfo=timezone.utc)
        assert seconds_since(start, now) == 60.0


class TestPaths:
    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("COLLAB_DATA_DIR", str(tmp_path))
        assert get_data_dir() == tmp_path.resolve()
        assert get_log_dir() == tmp_path.resolve() / "logs"

    def test_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("COLLAB_DATA_DIR", raising=False)
        assert get_data_dir() == Path.home() / ".collab"
