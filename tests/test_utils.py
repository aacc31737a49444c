"""Tests for fleetkeep/utils.py - pure utility functions and atomic writes."""

from __future__ import annotations

import datetime as dt
import json
from pathlib import Path

import pytest
from fleetkeep.utils import (
    ensure_private_dir,
    format_elapsed_time,
    format_relative_time,
    infer_actor,
    parse_kv_lines,
    parse_tags,
    utc_now_iso,
    write_json_atomic,
    write_text_atomic,
)


class TestParseKvLines:
    """Tests for parse_kv_lines against probe output."""

    def test_probe_output(self):
        """Labeled probe lines become a mapping; noise lines are dropped."""
        output = "OS=Linux\nWarning: motd banner\n  ARCH = x86_64 \nHOME_DIR=\n"
        assert parse_kv_lines(output) == {"OS": "Linux", "ARCH": "x86_64", "HOME_DIR": ""}

    def test_value_keeps_later_delimiters(self):
        """Agent version strings may themselves contain '='."""
        assert parse_kv_lines("AGENT_VERSION=raven build=abc") == {
            "AGENT_VERSION": "raven build=abc"
        }

    def test_repeated_label_keeps_last(self):
        """A label printed twice reports its final value."""
        assert parse_kv_lines("NODE_PRESENT=0\nNODE_PRESENT=1") == {"NODE_PRESENT": "1"}


class TestUtcNowIso:
    """Tests for utc_now_iso function."""

    def test_second_precision_utc(self):
        """Timestamps are UTC, second precision, parseable back."""
        result = utc_now_iso()
        parsed = dt.datetime.fromisoformat(result)
        assert parsed.utcoffset() == dt.timedelta(0)
        assert parsed.microsecond == 0
        assert result.endswith("+00:00")


class TestFormatElapsedTime:
    """Tests for format_elapsed_time function."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "0s"), (45.9, "45s"), (85, "1m25s"), (3930, "1h05m30s")],
    )
    def test_formats(self, seconds: float, expected: str):
        """Largest units first, zero-padded below the leading unit."""
        assert format_elapsed_time(seconds) == expected


class TestFormatRelativeTime:
    """Tests for format_relative_time function."""

    NOW = dt.datetime(2026, 1, 2, 12, 0, 0, tzinfo=dt.UTC)

    @pytest.mark.parametrize(
        ("ts", "expected"),
        [
            ("2026-01-02T11:59:30+00:00", "just now"),
            ("2026-01-02T11:55:00+00:00", "5m ago"),
            ("2026-01-02T09:00:00+00:00", "3h ago"),
            ("2025-12-30T12:00:00+00:00", "3d ago"),
        ],
    )
    def test_buckets(self, ts: str, expected: str):
        """Age is reported in the largest whole unit."""
        assert format_relative_time(ts, now=self.NOW) == expected

    def test_future_is_just_now(self):
        """Clock skew into the future is not reported as negative."""
        assert format_relative_time("2026-01-02T12:05:00+00:00", now=self.NOW) == "just now"

    def test_unparseable_returned_unchanged(self):
        """Garbage timestamps are shown as-is."""
        assert format_relative_time("yesterday", now=self.NOW) == "yesterday"


class TestParseTags:
    """Tests for parse_tags function."""

    def test_none(self):
        """No tags option means no tags."""
        assert parse_tags(None) == []

    def test_split_and_strip(self):
        """Blank entries are dropped and whitespace trimmed."""
        assert parse_tags(" prod, gpu,,  ") == ["prod", "gpu"]


class TestAtomicWrites:
    """Tests for write_text_atomic and write_json_atomic."""

    def test_creates_private_file(self, tmp_dir: Path):
        """Target and parent directory are owner-only."""
        target = tmp_dir / "state" / "file.txt"
        write_text_atomic(target, "hello")
        assert target.read_text() == "hello"
        assert (target.stat().st_mode & 0o777) == 0o600
        assert (target.parent.stat().st_mode & 0o777) == 0o700

    def test_replaces_existing(self, tmp_dir: Path):
        """An existing file is replaced wholesale."""
        target = tmp_dir / "file.txt"
        target.write_text("old content that is longer")
        write_text_atomic(target, "new")
        assert target.read_text() == "new"

    def test_failed_write_leaves_original(self, tmp_dir: Path, mocker):
        """If the rename fails the original survives and no temp file remains."""
        target = tmp_dir / "file.txt"
        target.write_text("original")
        mocker.patch("fleetkeep.utils.os.replace", side_effect=OSError("disk full"))

        with pytest.raises(OSError, match="disk full"):
            write_text_atomic(target, "new")

        assert target.read_text() == "original"
        assert sorted(p.name for p in tmp_dir.iterdir()) == ["file.txt"]

    def test_json_is_indented_with_newline(self, tmp_dir: Path):
        """JSON files are human-readable and newline-terminated."""
        target = tmp_dir / "data.json"
        write_json_atomic(target, {"a": 1})
        raw = target.read_text()
        assert raw.endswith("}\n")
        assert json.loads(raw) == {"a": 1}

    def test_ensure_private_dir_idempotent(self, tmp_dir: Path):
        """Creating an existing directory is fine."""
        d = tmp_dir / "x" / "y"
        ensure_private_dir(d)
        ensure_private_dir(d)
        assert d.is_dir()


class TestInferActor:
    """Tests for infer_actor function."""

    def test_fleetkeep_actor_priority(self, monkeypatch: pytest.MonkeyPatch):
        """FLEETKEEP_ACTOR takes priority over other env vars."""
        monkeypatch.setenv("FLEETKEEP_ACTOR", "test-actor")
        monkeypatch.setenv("SUDO_USER", "sudo-user")
        monkeypatch.setenv("USER", "regular-user")
        assert infer_actor() == "test-actor"

    def test_sudo_user_fallback(self, monkeypatch: pytest.MonkeyPatch):
        """SUDO_USER is used when FLEETKEEP_ACTOR not set."""
        monkeypatch.delenv("FLEETKEEP_ACTOR", raising=False)
        monkeypatch.setenv("SUDO_USER", "sudo-user")
        monkeypatch.setenv("USER", "regular-user")
        assert infer_actor() == "sudo-user"

    def test_unknown_fallback(self, monkeypatch: pytest.MonkeyPatch):
        """With nothing set the actor is 'unknown'."""
        for var in ("FLEETKEEP_ACTOR", "SUDO_USER", "USER"):
            monkeypatch.delenv(var, raising=False)
        assert infer_actor() == "unknown"
