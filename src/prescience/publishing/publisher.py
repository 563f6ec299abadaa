"""Signal publisher.

Takes gated Tier-1 snapshots and emits at most ``max_posts_per_day`` signals
per UTC day to the Telegram channel. A slug (or conditionId when the market
has no slug) is never posted twice inside the dedup window. Every emitted
signal is appended to ``telegram-post-log.json``; the publisher is the only
writer of that file.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field

from prescience.config import Settings, get_settings
from prescience.core.exceptions import PublisherConfigError
from prescience.core.logging import get_logger
from prescience.notifications.telegram import format_signal_message, send_telegram
from prescience.processing.models import MarketSnapshot, ScoredSnapshot
from prescience.processing.quality import passes_gate, score_call
from prescience.storage.files import load_json, save_json
from prescience.storage.models import PostLogEntry, parse_records

logger = get_logger(__name__)

Sender = Callable[..., Awaitable[bool]]


class PublishResult(BaseModel):
    """Summary of one publisher run (printed by the CLI)."""

    posted: list[PostLogEntry] = Field(default_factory=list)
    post_count: int = 0
    reason: str | None = None
    dry_run: bool = False
    today_total: int = 0
    max_per_day: int = 0
    messages: list[str] = Field(default_factory=list)


def score_candidates(
    snapshots: Iterable[MarketSnapshot], now: datetime, settings: Settings | None = None
) -> list[ScoredSnapshot]:
    """Score deep-scanned snapshots and keep the ones that pass the gate."""
    settings = settings or get_settings()
    scored = []
    for snapshot in snapshots:
        if snapshot.scan_depth != "deep":
            continue
        call = score_call(snapshot, now, settings)
        if passes_gate(call, settings):
            scored.append(ScoredSnapshot(snapshot=snapshot, quality=call))
    return scored


def entry_price_for(snapshot: MarketSnapshot) -> float | None:
    """Price of the called outcome at signal time."""
    if snapshot.call_side and snapshot.call_side in snapshot.current_prices:
        return snapshot.current_prices[snapshot.call_side]
    return snapshot.yes_price


class Publisher:
    """Applies quota and dedup, renders and sends signals, appends the post log."""

    def __init__(
        self,
        settings: Settings | None = None,
        sender: Sender | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._send = sender or send_telegram
        self._now = now_fn or (lambda: datetime.now(UTC))

    def load_post_log(self) -> list[PostLogEntry]:
        raw = load_json(self._settings.post_log_path, [])
        return parse_records(raw, PostLogEntry, source="post_log")

    def recent_keys(self, log: list[PostLogEntry], now: datetime) -> set[str]:
        """Slugs and conditionIds posted inside the dedup window."""
        cutoff = now - timedelta(days=self._settings.dedup_window_days)
        keys: set[str] = set()
        for entry in log:
            if entry.timestamp >= cutoff:
                keys.add(entry.slug)
                if entry.condition_id:
                    keys.add(entry.condition_id)
        return keys

    @staticmethod
    def count_today(log: list[PostLogEntry], now: datetime) -> int:
        today = now.astimezone(UTC).date()
        return sum(1 for e in log if e.timestamp.astimezone(UTC).date() == today)

    async def publish(
        self,
        candidates: list[ScoredSnapshot],
        *,
        dry_run: bool = False,
        channel: str | None = None,
    ) -> PublishResult:
        """Emit the best candidates that fit today's quota.

        Raises:
            PublisherConfigError: not a dry run and no bot token is configured
            StorageWriteError: the post log could not be written
        """
        settings = self._settings
        if not dry_run and not settings.telegram_bot_token:
            raise PublisherConfigError("TELEGRAM_BOT_TOKEN is not configured")

        now = self._now()
        log = self.load_post_log()
        today_count = self.count_today(log, now)
        max_per_day = settings.max_posts_per_day
        result = PublishResult(dry_run=dry_run, today_total=today_count, max_per_day=max_per_day)

        if today_count >= max_per_day:
            result.reason = f"Daily cap reached: {today_count}/{max_per_day} posts today"
            logger.info("Publisher skipped", reason=result.reason)
            return result

        excluded = set(settings.excluded_slugs)
        seen = self.recent_keys(log, now)
        fresh: list[ScoredSnapshot] = []
        for candidate in sorted(candidates, key=lambda c: c.quality.score, reverse=True):
            key = candidate.snapshot.key
            if key in excluded or key in seen or candidate.snapshot.condition_id in seen:
                continue
            seen.add(key)
            fresh.append(candidate)

        if not fresh:
            if candidates:
                result.reason = "No new candidates (all deduplicated)"
            else:
                result.reason = "No candidates passed the gate"
            logger.info("Publisher skipped", reason=result.reason, candidates=len(candidates))
            return result

        selected = fresh[: max_per_day - today_count]
        target_channel = channel or settings.telegram_chat_id
        for candidate in selected:
            snapshot, call = candidate.snapshot, candidate.quality
            message = format_signal_message(snapshot, call, settings.site_url)
            result.messages.append(message)
            entry = PostLogEntry(
                slug=snapshot.key,
                question=snapshot.question,
                score=call.score,
                timestamp=now,
                threat_score=snapshot.threat_score,
                yes_price=snapshot.yes_price,
                flow_direction=snapshot.flow_direction_v2,
                call_side=snapshot.call_side,
                entry_price=entry_price_for(snapshot),
                condition_id=snapshot.condition_id,
                channel=target_channel,
            )
            if dry_run:
                result.posted.append(entry)
                continue
            if not await self._send(message, chat_id=target_channel):
                logger.warning("Signal send failed, not logging", slug=snapshot.key)
                continue
            log.append(entry)
            save_json(settings.post_log_path, [e.to_wire() for e in log])
            result.posted.append(entry)

        result.post_count = len(result.posted)
        result.today_total = today_count + (0 if dry_run else result.post_count)
        if not result.post_count:
            result.reason = "All sends failed"

        logger.info(
            "Publisher run complete",
            posted=result.post_count,
            dry_run=dry_run,
            today_total=result.today_total,
        )
        return result
