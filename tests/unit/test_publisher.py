"""Tests for the signal publisher."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from factories import NOW, make_candidate, make_post, make_snapshot
from prescience.config import Settings
from prescience.core.exceptions import PublisherConfigError
from prescience.processing.models import VelocityResult
from prescience.publishing.publisher import Publisher, entry_price_for, score_candidates
from prescience.storage.files import load_json, save_json
from prescience.storage.models import PostLogEntry


def _write_log(settings: Settings, entries: list[PostLogEntry]) -> None:
    save_json(settings.post_log_path, [e.to_wire() for e in entries])


def _publisher(settings: Settings, sender: AsyncMock | None = None) -> Publisher:
    return Publisher(
        settings,
        sender=sender or AsyncMock(return_value=True),
        now_fn=lambda: NOW,
    )


def _candidates(*slugs: str, score: int = 8) -> list:
    return [
        make_candidate(score=score, slug=slug, condition_id=f"0x{slug}") for slug in slugs
    ]


class TestDailyCap:
    @pytest.mark.asyncio
    async def test_cap_reached(self, settings: Settings) -> None:
        _write_log(settings, [make_post(s, at=NOW - timedelta(hours=2)) for s in "abc"])
        sender = AsyncMock(return_value=True)

        result = await _publisher(settings, sender).publish(_candidates("d", "e", "f", "g"))

        assert result.post_count == 0
        assert result.reason == "Daily cap reached: 3/3 posts today"
        assert result.today_total == 3
        sender.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fills_remaining_quota_with_best_candidates(self, settings: Settings) -> None:
        _write_log(settings, [make_post(s, at=NOW - timedelta(hours=1)) for s in ("a", "b")])
        candidates = [
            make_candidate(score=7, slug="low", condition_id="0xlow"),
            make_candidate(score=11, slug="best", condition_id="0xbest"),
            make_candidate(score=9, slug="mid", condition_id="0xmid"),
        ]

        result = await _publisher(settings).publish(candidates)

        assert [p.slug for p in result.posted] == ["best"]
        assert result.today_total == 3

    @pytest.mark.asyncio
    async def test_yesterdays_posts_do_not_count(self, settings: Settings) -> None:
        _write_log(settings, [make_post(s, at=NOW - timedelta(days=1)) for s in "abc"])

        result = await _publisher(settings).publish(_candidates("d", "e"))

        assert result.post_count == 2

    @pytest.mark.asyncio
    async def test_quota_holds_across_runs(self, settings: Settings) -> None:
        publisher = _publisher(settings)

        first = await publisher.publish(_candidates("a", "b"))
        second = await publisher.publish(_candidates("c", "d", "e"))
        third = await publisher.publish(_candidates("f"))

        assert first.post_count == 2
        assert second.post_count == 1
        assert third.post_count == 0
        assert len(load_json(settings.post_log_path, [])) == 3


class TestDedup:
    @pytest.mark.asyncio
    async def test_recent_slug_is_skipped(self, settings: Settings) -> None:
        _write_log(settings, [make_post("a", at=NOW - timedelta(days=3))])

        result = await _publisher(settings).publish(_candidates("a", "b"))

        assert [p.slug for p in result.posted] == ["b"]

    @pytest.mark.asyncio
    async def test_slug_outside_window_is_allowed(self, settings: Settings) -> None:
        _write_log(settings, [make_post("a", at=NOW - timedelta(days=8))])

        result = await _publisher(settings).publish(_candidates("a"))

        assert [p.slug for p in result.posted] == ["a"]

    @pytest.mark.asyncio
    async def test_all_deduplicated(self, settings: Settings) -> None:
        _write_log(settings, [make_post("a", at=NOW - timedelta(days=1))])

        result = await _publisher(settings).publish(_candidates("a"))

        assert result.post_count == 0
        assert result.reason == "No new candidates (all deduplicated)"

    @pytest.mark.asyncio
    async def test_same_condition_id_under_new_slug_is_skipped(self, settings: Settings) -> None:
        _write_log(
            settings,
            [make_post("old-slug", at=NOW - timedelta(days=1), condition_id="0xcond1")],
        )

        result = await _publisher(settings).publish([make_candidate(slug="new-slug")])

        assert result.post_count == 0

    @pytest.mark.asyncio
    async def test_condition_id_used_when_slug_missing(self, settings: Settings) -> None:
        publisher = _publisher(settings)
        candidate = make_candidate(slug=None, condition_id="0xnoslug")

        first = await publisher.publish([candidate])
        second = await publisher.publish([candidate])

        assert [p.slug for p in first.posted] == ["0xnoslug"]
        assert second.post_count == 0

    @pytest.mark.asyncio
    async def test_duplicate_candidates_in_one_batch(self, settings: Settings) -> None:
        candidates = [make_candidate(score=9, slug="a"), make_candidate(score=8, slug="a")]

        result = await _publisher(settings).publish(candidates)

        assert result.post_count == 1
        assert result.posted[0].score == 9

    @pytest.mark.asyncio
    async def test_excluded_slugs(self, settings: Settings) -> None:
        settings = settings.model_copy(update={"excluded_slugs": ["a"]})

        result = await _publisher(settings).publish(_candidates("a", "b"))

        assert [p.slug for p in result.posted] == ["b"]


class TestPublish:
    @pytest.mark.asyncio
    async def test_post_log_entry_contents(self, settings: Settings) -> None:
        sender = AsyncMock(return_value=True)
        candidate = make_candidate(
            score=9,
            current_prices={"Yes": 0.42, "No": 0.58},
            yes_price=0.42,
            flow_direction_v2="MINORITY_HEAVY",
        )

        await _publisher(settings, sender).publish([candidate])

        saved = load_json(settings.post_log_path, [])
        assert saved == [
            {
                "slug": "fed-cut-march",
                "question": "Will the Fed cut interest rates in March?",
                "score": 9,
                "timestamp": "2026-03-01T12:00:00Z",
                "threat_score": 52,
                "yesPrice": 0.42,
                "flowDirection": "MINORITY_HEAVY",
                "call_side": "Yes",
                "entry_price": 0.42,
                "conditionId": "0xcond1",
                "channel": "-100123",
            }
        ]
        message = sender.await_args.args[0]
        assert "PRESCIENCE SIGNAL" in message
        assert sender.await_args.kwargs == {"chat_id": "-100123"}

    @pytest.mark.asyncio
    async def test_channel_override(self, settings: Settings) -> None:
        sender = AsyncMock(return_value=True)

        result = await _publisher(settings, sender).publish(_candidates("a"), channel="@other")

        assert sender.await_args.kwargs == {"chat_id": "@other"}
        assert result.posted[0].channel == "@other"

    @pytest.mark.asyncio
    async def test_dry_run_has_no_side_effects(self, settings: Settings) -> None:
        sender = AsyncMock(return_value=True)

        result = await _publisher(settings, sender).publish(_candidates("a", "b"), dry_run=True)

        assert result.dry_run
        assert result.post_count == 2
        assert len(result.messages) == 2
        assert result.today_total == 0
        sender.assert_not_awaited()
        assert not settings.post_log_path.exists()

    @pytest.mark.asyncio
    async def test_dry_run_without_token(self, tmp_path) -> None:
        settings = Settings(signals_dir=tmp_path, telegram_bot_token=None)

        result = await _publisher(settings).publish(_candidates("a"), dry_run=True)

        assert result.post_count == 1

    @pytest.mark.asyncio
    async def test_missing_token_raises(self, tmp_path) -> None:
        settings = Settings(signals_dir=tmp_path, telegram_bot_token=None)

        with pytest.raises(PublisherConfigError):
            await _publisher(settings).publish(_candidates("a"))

    @pytest.mark.asyncio
    async def test_failed_send_is_not_logged(self, settings: Settings) -> None:
        sender = AsyncMock(side_effect=[False, True])

        result = await _publisher(settings, sender).publish(_candidates("a", "b"))

        assert [p.slug for p in result.posted] == ["b"]
        assert [e["slug"] for e in load_json(settings.post_log_path, [])] == ["b"]

    @pytest.mark.asyncio
    async def test_all_sends_failed(self, settings: Settings) -> None:
        sender = AsyncMock(return_value=False)

        result = await _publisher(settings, sender).publish(_candidates("a"))

        assert result.post_count == 0
        assert result.reason == "All sends failed"
        assert not settings.post_log_path.exists()

    @pytest.mark.asyncio
    async def test_no_candidates(self, settings: Settings) -> None:
        result = await _publisher(settings).publish([])

        assert result.reason == "No candidates passed the gate"

    @pytest.mark.asyncio
    async def test_unknown_log_fields_survive_rewrite(self, settings: Settings) -> None:
        save_json(
            settings.post_log_path,
            [{"slug": "old", "timestamp": "2026-02-01T00:00:00Z", "messageId": 42}],
        )

        await _publisher(settings).publish(_candidates("a"))

        saved = load_json(settings.post_log_path, [])
        assert saved[0]["messageId"] == 42
        assert saved[1]["slug"] == "a"


class TestScoreCandidates:
    def test_keeps_only_deep_snapshots_that_pass(self, settings: Settings) -> None:
        strong = dict(
            flow_direction_v2="MINORITY_HEAVY",
            fresh_wallet_excess=0.3,
            velocity=VelocityResult(velocity_score=40),
        )
        snapshots = [
            make_snapshot(slug="strong", **strong),
            make_snapshot(slug="light", scan_depth="lightweight", **strong),
            make_snapshot(slug="weak"),
        ]

        scored = score_candidates(snapshots, NOW, settings)

        assert [c.snapshot.slug for c in scored] == ["strong"]
        assert scored[0].quality.score >= settings.call_quality_threshold

    def test_entry_price_follows_call_side(self) -> None:
        snapshot = make_snapshot(call_side="No", current_prices={"Yes": 0.3, "No": 0.7})

        assert entry_price_for(snapshot) == 0.7
        assert entry_price_for(make_snapshot(call_side=None, yes_price=0.4)) == 0.4
