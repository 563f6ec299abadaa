"""Proof-of-call generator.

Records how far each call has moved since it was made, before its market
resolves. Two sources feed it: the external scanner's ``active_flags`` in
``scanner-alerts.json`` and the first post-log entry per slug. The result
replaces ``live-proofs.json`` (this module is its only writer); the
scorecard reads it for open calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from prescience.config import Settings, get_settings
from prescience.core.constants import (
    PROOF_CONFIRMED_MOVE_PP,
    PROOF_NOTABLE_MOVE_PP,
    PROOF_REQUEST_DELAY_SECONDS,
    PROOF_UTC_OFFSET_HOURS,
    SCANNER_FLAG_SOURCE,
    SIGNAL_PROOF_SOURCE,
)
from prescience.core.logging import get_logger
from prescience.storage.files import load_json, save_json
from prescience.storage.models import (
    LiveProof,
    LiveProofs,
    PostLogEntry,
    ScannerFlag,
    format_pnl,
    parse_records,
)

if TYPE_CHECKING:
    from prescience.markets.polymarket import PolymarketClient

logger = get_logger(__name__)


def format_est(ts: datetime) -> str:
    est = ts.astimezone(UTC) + timedelta(hours=PROOF_UTC_OFFSET_HOURS)
    return est.strftime("%Y-%m-%d %H:%M EST")


def format_pct(price: float) -> str:
    return f"{price * 100:.1f}%"


def move_pp(from_price: float, to_price: float) -> float:
    """Signed move in percentage points, rounded to one decimal."""
    return round((to_price - from_price) * 100, 1)


def format_move(delta_pp: float) -> str:
    return f"{delta_pp:+.1f}pp"


def called_direction(signal: PostLogEntry) -> str:
    """YES or NO, from the recorded call side or the flow heuristic for older entries."""
    if signal.call_side:
        return "NO" if signal.call_side.casefold() == "no" else "YES"
    if signal.flow_direction == "MINORITY_HEAVY" and (signal.yes_price or 0) >= 0.5:
        return "NO"
    return "YES"


def implied_move_pnl(direction: str, from_price: float, to_price: float) -> float | None:
    """Percent return on the called side if closed at ``to_price``."""
    if direction == "YES":
        if from_price <= 0:
            return None
        return round((to_price - from_price) / from_price * 100, 1)
    if from_price >= 1:
        return None
    return round((from_price - to_price) / (1 - from_price) * 100, 1)


def dedupe_post_log(post_log: list[PostLogEntry]) -> list[PostLogEntry]:
    """First entry per slug, in post-log order."""
    seen: set[str] = set()
    unique = []
    for entry in post_log:
        if entry.slug in seen:
            continue
        seen.add(entry.slug)
        unique.append(entry)
    return unique


def proof_text(
    *,
    market: str,
    source: str,
    flagged_at: str,
    from_price: float,
    to_price: float,
    peak_price: float | None = None,
    note: str = "",
) -> str:
    lines = [
        "PROOF OF CALL",
        "",
        f"Market: {market}",
        f"Flagged: {flagged_at} ({source})",
        f"At signal: {format_pct(from_price)}",
    ]
    if peak_price is not None:
        lines.append(f"Peak: {format_pct(peak_price)}")
    lines.append(f"Now: {format_pct(to_price)} ({format_move(move_pp(from_price, to_price))})")
    lines.extend(["", note])
    return "\n".join(lines)


def build_flag_proof(flag: ScannerFlag, current_price: float | None, now: datetime) -> LiveProof:
    from_price = flag.original_price
    to_price = current_price if current_price is not None else flag.current_price
    if to_price is None:
        to_price = from_price
    delta = move_pp(from_price, to_price)

    if abs(delta) >= PROOF_CONFIRMED_MOVE_PP:
        status = "CONFIRMED_MOVE" if to_price > from_price else "CONFIRMED_FADE"
    else:
        status = "MONITORING"

    flagged_at = flag.original_flag_time_est or format_est(flag.original_flag_time)
    peak_delta = (
        format_move(move_pp(from_price, flag.peak_price)) if flag.peak_price is not None else None
    )
    return LiveProof(
        id=flag.id,
        source=SCANNER_FLAG_SOURCE,
        type="PRE_PUBLIC_DETECTION",
        market=flag.market,
        slug=flag.slug,
        original_flag_time=flag.original_flag_time.isoformat(),
        original_flag_time_est=flagged_at,
        original_price=from_price,
        current_price=to_price,
        peak_price=flag.peak_price,
        delta_from_signal=delta,
        delta_from_signal_str=format_move(delta),
        peak_delta_str=peak_delta,
        direction_called=flag.flow_direction or "MINORITY_HEAVY",
        conviction=flag.conviction or "MEDIUM",
        scan_score=flag.scan_score,
        status=status,
        notable=abs(delta) >= PROOF_NOTABLE_MOVE_PP,
        flag_summary=flag.summary or "",
        next_trigger=flag.next_trigger,
        media_context=flag.media_context,
        updated_at=now,
        proof_text=proof_text(
            market=flag.market,
            source="scanner flag",
            flagged_at=flagged_at,
            from_price=from_price,
            to_price=to_price,
            peak_price=flag.peak_price,
            note=flag.summary or "",
        ),
    )


def build_signal_proof(
    signal: PostLogEntry, current_price: float | None, now: datetime
) -> LiveProof | None:
    """Proof for a posted signal; None when the post carries no YES price."""
    if signal.yes_price is None:
        return None
    from_price = signal.yes_price
    to_price = current_price if current_price is not None else from_price
    delta = move_pp(from_price, to_price)
    direction = called_direction(signal)

    moving_our_way = (direction == "YES" and delta > 0) or (direction == "NO" and delta < 0)
    if abs(delta) >= PROOF_CONFIRMED_MOVE_PP:
        status = "WINNING" if moving_our_way else "LOSING"
    else:
        status = "OPEN"

    pnl = implied_move_pnl(direction, from_price, to_price)
    score = signal.score or signal.threat_score
    flagged_at = format_est(signal.timestamp)
    return LiveProof(
        id=f"signal-{signal.slug}-{signal.timestamp.strftime('%Y%m%dT%H%M%S')}",
        source=SIGNAL_PROOF_SOURCE,
        type="FORMAL_SIGNAL",
        market=signal.question,
        slug=signal.slug,
        signal_timestamp=signal.timestamp.isoformat(),
        signal_timestamp_est=flagged_at,
        signal_yes_price=from_price,
        current_yes_price=to_price,
        current_price=to_price,
        delta_from_signal=delta,
        delta_from_signal_str=format_move(delta),
        called_direction=direction,
        implied_pnl=format_pnl(pnl) if pnl is not None else None,
        signal_score=score,
        flow_direction=signal.flow_direction,
        status=status,
        notable=abs(delta) >= PROOF_NOTABLE_MOVE_PP,
        updated_at=now,
        proof_text=proof_text(
            market=signal.question,
            source="Prescience signal bot",
            flagged_at=flagged_at,
            from_price=from_price,
            to_price=to_price,
            note=f"Score {score}/12, {signal.flow_direction} flow. Called {direction}.",
        ),
    )


def load_scanner_flags(settings: Settings) -> list[ScannerFlag]:
    raw = load_json(settings.scanner_alerts_path, {})
    flags = raw.get("active_flags", []) if isinstance(raw, dict) else []
    return parse_records(flags, ScannerFlag, source="scanner_alerts")


class ProofGenerator:
    def __init__(
        self,
        client: PolymarketClient,
        settings: Settings | None = None,
        now_fn: Callable[[], datetime] | None = None,
        delay_seconds: float = PROOF_REQUEST_DELAY_SECONDS,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        self._now = now_fn or (lambda: datetime.now(UTC))
        self._delay = delay_seconds

    async def _current_price(self, slug: str | None) -> float | None:
        if not slug:
            return None
        try:
            market = await self._client.get_market_by_slug(slug)
        except Exception:
            logger.exception("Proof price lookup failed", slug=slug)
            return None
        return market.yes_price if market is not None else None

    async def run(self, *, dry_run: bool = False) -> LiveProofs:
        """Rebuild every live proof from current prices.

        Raises:
            StorageWriteError: the live proofs file could not be written
        """
        settings = self._settings
        now = self._now()
        proofs: list[LiveProof] = []

        flags = load_scanner_flags(settings)
        for flag in flags:
            price = await self._current_price(flag.slug)
            proofs.append(build_flag_proof(flag, price, now))

        post_log = parse_records(
            load_json(settings.post_log_path, []), PostLogEntry, source="post_log"
        )
        signals = dedupe_post_log(post_log)
        for i, signal in enumerate(signals):
            if i and self._delay:
                await asyncio.sleep(self._delay)
            proof = build_signal_proof(signal, await self._current_price(signal.slug), now)
            if proof is None:
                logger.debug("Signal has no entry price, skipping proof", slug=signal.slug)
                continue
            proofs.append(proof)

        result = LiveProofs(
            generated_at=now,
            total_proofs=len(proofs),
            notable_count=sum(1 for p in proofs if p.notable),
            proofs=proofs,
        )
        if not dry_run:
            document = result.model_dump(mode="json", exclude={"proofs"})
            document["proofs"] = [p.to_wire() for p in proofs]
            save_json(settings.live_proofs_path, document)

        logger.info(
            "Proof generation complete",
            flags=len(flags),
            signals=len(signals),
            proofs=result.total_proofs,
            notable=result.notable_count,
            dry_run=dry_run,
        )
        return result
