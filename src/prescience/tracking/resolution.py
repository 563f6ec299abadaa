"""Resolution tracker.

Checks every post-log slug that has no receipt yet against the upstream
market. Once a market has resolved with a clear winner, a receipt is
appended to ``resolution-receipts.json`` (this module is its only writer)
and a receipt message is posted to the channel.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from prescience.config import Settings, get_settings
from prescience.core.constants import RESOLVED_PRICE_HIGH, RESOLVED_PRICE_LOW
from prescience.core.exceptions import PublisherConfigError
from prescience.core.logging import get_logger
from prescience.notifications.telegram import format_receipt_message, send_telegram
from prescience.storage.files import load_json, save_json
from prescience.storage.models import PostLogEntry, Receipt, parse_records

if TYPE_CHECKING:
    from prescience.markets.models import Market
    from prescience.markets.polymarket import PolymarketClient

logger = get_logger(__name__)

CHECK_DELAY_SECONDS = 0.5


class ResolutionResult(BaseModel):
    checked: int = 0
    resolved: int = 0
    unresolved: int = 0
    errors: int = 0
    resolved_markets: list[dict[str, str]] = Field(default_factory=list)
    dry_run: bool = False
    reason: str | None = None


def winning_outcome(market: Market) -> str | None:
    """Name of the winning outcome, or None while unresolved or unclear."""
    if market.active and not market.closed:
        return None
    prices = market.current_prices
    for name, price in prices.items():
        if price > RESOLVED_PRICE_HIGH:
            return name
    if market.is_binary:
        losers = [name for name, price in prices.items() if price < RESOLVED_PRICE_LOW]
        if len(losers) == 1:
            return next(name for name in prices if name != losers[0])
    return None


def implied_pnl(entry_price: float | None, correct: bool | None) -> float | None:
    """Percent return of buying the called side at ``entry_price`` and holding."""
    if correct is None or entry_price is None or entry_price <= 0:
        return None
    if not correct:
        return -100.0
    return round((1 / entry_price - 1) * 100, 1)


def build_receipt(signal: PostLogEntry, outcome: str, now: datetime) -> Receipt:
    correct = signal.call_side.casefold() == outcome.casefold() if signal.call_side else None
    return Receipt(
        slug=signal.slug,
        question=signal.question,
        signal_score=signal.score,
        entry_price=signal.entry_price,
        outcome=outcome.upper(),
        pnl=implied_pnl(signal.entry_price, correct),
        correct=correct,
        called_at=signal.timestamp,
        resolved_at=now,
    )


def pending_signals(post_log: list[PostLogEntry], receipts: list[Receipt]) -> list[PostLogEntry]:
    """Highest-scoring post-log entry per slug that has no receipt yet."""
    done = {r.slug for r in receipts}
    best: dict[str, PostLogEntry] = {}
    for entry in post_log:
        if entry.slug in done:
            continue
        current = best.get(entry.slug)
        if current is None or entry.score > current.score:
            best[entry.slug] = entry
    return list(best.values())


class ResolutionTracker:
    def __init__(
        self,
        client: PolymarketClient,
        settings: Settings | None = None,
        sender: Callable[..., Awaitable[bool]] | None = None,
        now_fn: Callable[[], datetime] | None = None,
        delay_seconds: float = CHECK_DELAY_SECONDS,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        self._send = sender or send_telegram
        self._now = now_fn or (lambda: datetime.now(UTC))
        self._delay = delay_seconds

    async def run(self, *, dry_run: bool = False) -> ResolutionResult:
        """Check pending signals and write receipts for resolved markets.

        Raises:
            PublisherConfigError: not a dry run and no bot token is configured
            StorageWriteError: the receipts file could not be written
        """
        settings = self._settings
        if not dry_run and not settings.telegram_bot_token:
            raise PublisherConfigError("TELEGRAM_BOT_TOKEN is not configured")

        post_log = parse_records(
            load_json(settings.post_log_path, []), PostLogEntry, source="post_log"
        )
        receipts = parse_records(load_json(settings.receipts_path, []), Receipt, source="receipts")
        pending = pending_signals(post_log, receipts)

        result = ResolutionResult(dry_run=dry_run, checked=len(pending))
        if not pending:
            result.reason = "No unprocessed signals"
            return result

        new_receipts: list[Receipt] = []
        for i, signal in enumerate(pending):
            if i and self._delay:
                await asyncio.sleep(self._delay)
            try:
                market = await self._client.get_market_by_slug(signal.slug)
            except Exception:
                logger.exception("Resolution check failed", slug=signal.slug)
                result.errors += 1
                continue

            outcome = winning_outcome(market) if market is not None else None
            if outcome is None:
                result.unresolved += 1
                continue

            receipt = build_receipt(signal, outcome, self._now())
            if not dry_run:
                message = format_receipt_message(receipt, settings.site_url)
                if not await self._send(message):
                    logger.warning("Receipt send failed, will retry next run", slug=signal.slug)
                    result.errors += 1
                    continue
            new_receipts.append(receipt)
            if not dry_run:
                save_json(settings.receipts_path, [r.to_wire() for r in receipts + new_receipts])
            result.resolved_markets.append({"slug": signal.slug, "outcome": receipt.outcome or ""})

        result.resolved = len(new_receipts)

        logger.info(
            "Resolution check complete",
            checked=result.checked,
            resolved=result.resolved,
            unresolved=result.unresolved,
            errors=result.errors,
            dry_run=dry_run,
        )
        return result
