"""Tests for the TTL cache, JSON file store and persisted record models."""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from prescience.core.cache import TTLCache
from prescience.core.exceptions import StorageWriteError
from prescience.storage.files import count_entries, load_json, save_json
from prescience.storage.models import (
    PostLogEntry,
    Receipt,
    format_pnl,
    parse_pnl,
    parse_records,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_hit_within_ttl(self) -> None:
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(60, clock=clock)
        cache.set("k", "v")
        clock.now += 30

        hit = cache.get("k")

        assert hit is not None
        assert hit.value == "v"
        assert hit.age_seconds == 30
        assert hit.age_minutes == 0

    def test_expires_after_ttl(self) -> None:
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(60, clock=clock)
        cache.set("k", "v")
        clock.now += 60

        assert cache.get("k") is None
        assert len(cache) == 0

    def test_evicts_oldest_when_full(self) -> None:
        clock = FakeClock()
        cache: TTLCache[int] = TTLCache(60, max_entries=2, clock=clock)
        cache.set("a", 1)
        clock.now += 1
        cache.set("b", 2)
        clock.now += 1
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("b") is not None
        assert cache.get("c") is not None

    def test_invalidate(self) -> None:
        cache: TTLCache[int] = TTLCache(60)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.invalidate()
        assert len(cache) == 0


class TestJsonFiles:
    def test_missing_file_returns_default(self, tmp_path: Path) -> None:
        assert load_json(tmp_path / "missing.json", []) == []

    def test_corrupt_file_returns_default(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        assert load_json(path, {"proofs": []}) == {"proofs": []}

    def test_save_then_load(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "log.json"
        save_json(path, [{"slug": "a"}])

        assert load_json(path, []) == [{"slug": "a"}]
        assert list(path.parent.iterdir()) == [path]

    def test_save_logs_stay_off_stdout(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        save_json(tmp_path / "log.json", [{"slug": "a"}])

        assert capsys.readouterr().out == ""

    def test_save_unserialisable_raises(self, tmp_path: Path) -> None:
        with pytest.raises(StorageWriteError):
            save_json(tmp_path / "x.json", {"value": object()})

    def test_save_to_unwritable_location_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")

        with pytest.raises(StorageWriteError):
            save_json(blocker / "child.json", [])

    def test_count_entries(self, tmp_path: Path) -> None:
        listing = tmp_path / "subs.json"
        listing.write_bytes(orjson.dumps([{"id": 1}, {"id": 2}]))
        wrapped = tmp_path / "queue.json"
        wrapped.write_bytes(orjson.dumps({"queue": [1, 2, 3]}))

        assert count_entries(listing) == 2
        assert count_entries(wrapped) == 3
        assert count_entries(tmp_path / "missing.json") == 0


class TestPnl:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("+72.4%", 72.4),
            ("-100%", -100.0),
            ("12", 12.0),
            (33.3, 33.3),
            (5, 5.0),
            ("n/a", None),
            (None, None),
            (True, None),
        ],
    )
    def test_parse_pnl(self, raw: object, expected: float | None) -> None:
        assert parse_pnl(raw) == expected

    def test_format_pnl(self) -> None:
        assert format_pnl(72.44) == "+72.4%"
        assert format_pnl(-100) == "-100.0%"


class TestRecords:
    def test_post_log_entry_accepts_camel_case_and_keeps_unknown_keys(self) -> None:
        entry = PostLogEntry.model_validate(
            {
                "slug": "fed-cut-march",
                "question": "Will the Fed cut?",
                "score": 8,
                "timestamp": "2026-03-01T12:00:00Z",
                "yesPrice": 0.42,
                "flowDirection": "MINORITY_HEAVY",
                "messageId": 991,
            }
        )

        wire = entry.to_wire()
        assert entry.yes_price == 0.42
        assert wire["yesPrice"] == 0.42
        assert wire["flowDirection"] == "MINORITY_HEAVY"
        assert wire["messageId"] == 991

    def test_naive_timestamps_are_utc(self) -> None:
        entry = PostLogEntry.model_validate({"slug": "a", "timestamp": "2026-03-01T12:00:00"})

        assert entry.timestamp.tzinfo is not None
        assert entry.timestamp.utcoffset().total_seconds() == 0  # type: ignore[union-attr]

    def test_receipt_accepts_string_or_numeric_pnl(self) -> None:
        assert Receipt(slug="a", pnl="+72.4%").pnl_value == 72.4
        assert Receipt(slug="b", pnl=-100.0).pnl_value == -100.0

    def test_parse_records_skips_malformed(self) -> None:
        raw = [
            {"slug": "ok", "timestamp": "2026-03-01T12:00:00Z"},
            {"slug": "no-timestamp"},
            "garbage",
        ]

        records = parse_records(raw, PostLogEntry, source="test")

        assert [r.slug for r in records] == ["ok"]

    def test_parse_records_non_list(self) -> None:
        assert parse_records({"slug": "a"}, PostLogEntry, source="test") == []
