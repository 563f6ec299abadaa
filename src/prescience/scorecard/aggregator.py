"""Scorecard aggregator.

Joins the post log (signals emitted), resolution receipts and optional live
proofs into the public ``scorecard.json`` snapshot.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from prescience.config import Settings, get_settings
from prescience.core.constants import SCANNER_FLAG_SOURCE
from prescience.core.logging import get_logger
from prescience.storage.files import load_json, save_json
from prescience.storage.models import (
    LiveProof,
    PostLogEntry,
    Receipt,
    Scorecard,
    ScorecardCall,
    ScorecardStats,
    format_pnl,
    parse_pnl,
    parse_records,
)

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


def latest_by_slug(post_log: list[PostLogEntry]) -> dict[str, PostLogEntry]:
    """One entry per slug, keeping the most recent timestamp."""
    latest: dict[str, PostLogEntry] = {}
    for entry in post_log:
        current = latest.get(entry.slug)
        if current is None or entry.timestamp >= current.timestamp:
            latest[entry.slug] = entry
    return latest


def _open_call(entry: PostLogEntry, proof: LiveProof | None) -> ScorecardCall:
    call = ScorecardCall(
        slug=entry.slug,
        question=entry.question,
        signal_score=entry.score if entry.score else entry.threat_score,
        entry_price=entry.entry_price if entry.entry_price is not None else entry.yes_price,
        flow_direction=entry.flow_direction,
        call_side=entry.call_side,
        called_at=entry.timestamp,
        status="open",
    )
    if proof is not None:
        call.current_price = proof.current_price
        call.delta_from_signal = proof.delta_from_signal_str
        implied = parse_pnl(proof.implied_pnl)
        if implied is not None:
            call.pnl = format_pnl(implied)
    return call


def _resolved_call(receipt: Receipt, signal: PostLogEntry | None) -> ScorecardCall:
    pnl = receipt.pnl_value
    return ScorecardCall(
        slug=receipt.slug,
        question=receipt.question or (signal.question if signal else ""),
        signal_score=(
            receipt.signal_score
            if receipt.signal_score is not None
            else (signal.score if signal else None)
        ),
        entry_price=(
            receipt.entry_price
            if receipt.entry_price is not None
            else (signal.entry_price if signal else None)
        ),
        flow_direction=signal.flow_direction if signal else None,
        call_side=signal.call_side if signal else None,
        called_at=receipt.called_at or (signal.timestamp if signal else None),
        status="resolved",
        outcome=receipt.outcome,
        pnl=format_pnl(pnl) if pnl is not None else None,
        correct=receipt.correct,
        resolved_at=receipt.resolved_at,
    )


def compute_stats(open_calls: int, receipts: list[Receipt]) -> ScorecardStats:
    resolved = len(receipts)
    wins = sum(1 for r in receipts if r.correct is True)
    pnls = [p for p in (r.pnl_value for r in receipts) if p is not None]
    return ScorecardStats(
        total_calls=open_calls + resolved,
        resolved=resolved,
        open=open_calls,
        wins=wins,
        losses=resolved - wins,
        win_rate=f"{wins / resolved * 100:.1f}" if resolved else None,
        cumulative_pnl=format_pnl(sum(pnls) / len(pnls)) if pnls else None,
    )


def build_scorecard(
    post_log: list[PostLogEntry],
    receipts: list[Receipt],
    proofs: list[LiveProof] | None = None,
    now: datetime | None = None,
) -> Scorecard:
    """Join signals, receipts and live proofs into one scorecard snapshot.

    Open calls are post-log slugs without a receipt; every receipt is a
    resolved call. Calls are ordered by ``called_at``, newest first.
    """
    proofs = proofs or []
    signals = latest_by_slug(post_log)

    receipts_by_slug: dict[str, Receipt] = {}
    for receipt in receipts:
        receipts_by_slug[receipt.slug] = receipt
    unique_receipts = list(receipts_by_slug.values())

    proofs_by_slug = {p.slug: p for p in proofs if p.slug and p.source != SCANNER_FLAG_SOURCE}

    open_calls = [
        _open_call(entry, proofs_by_slug.get(slug))
        for slug, entry in signals.items()
        if slug not in receipts_by_slug
    ]
    resolved_calls = [_resolved_call(r, signals.get(r.slug)) for r in unique_receipts]

    calls = open_calls + resolved_calls
    calls.sort(key=lambda c: c.called_at or _EPOCH, reverse=True)

    scanner_flags: list[dict[str, Any]] = [
        p.to_wire() for p in proofs if p.source == SCANNER_FLAG_SOURCE
    ]

    return Scorecard(
        stats=compute_stats(len(open_calls), unique_receipts),
        calls=calls,
        scanner_flags=scanner_flags,
        updated_at=now or datetime.now(UTC),
    )


def load_live_proofs(settings: Settings) -> list[LiveProof]:
    raw = load_json(settings.live_proofs_path, {})
    items = raw.get("proofs", []) if isinstance(raw, dict) else raw
    return parse_records(items, LiveProof, source="live_proofs")


def run_scorecard(settings: Settings | None = None, *, dry_run: bool = False) -> Scorecard:
    """Rebuild ``scorecard.json`` from the files on disk.

    Raises:
        StorageWriteError: the scorecard could not be written
    """
    settings = settings or get_settings()
    post_log = parse_records(load_json(settings.post_log_path, []), PostLogEntry, source="post_log")
    receipts = parse_records(load_json(settings.receipts_path, []), Receipt, source="receipts")
    scorecard = build_scorecard(post_log, receipts, load_live_proofs(settings))

    if not dry_run:
        save_json(settings.scorecard_path, scorecard.model_dump(mode="json"))
    logger.info(
        "Scorecard rebuilt",
        total_calls=scorecard.stats.total_calls,
        resolved=scorecard.stats.resolved,
        open=scorecard.stats.open,
        dry_run=dry_run,
    )
    return scorecard
