"""Persisted record schemas.

- ``telegram-post-log.json``: list of ``PostLogEntry`` (publisher writes)
- ``resolution-receipts.json``: list of ``Receipt`` (resolution tracker writes)
- ``live-proofs.json``: ``{"proofs": [LiveProof]}`` (proof-of-call generator writes)
- ``scanner-alerts.json``: ``{"active_flags": [ScannerFlag]}`` (external scanner writes)
- ``scorecard.json``: ``Scorecard`` (scorecard aggregator writes)

Unknown keys are kept so a rewrite never drops fields another tool added.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from prescience.core.logging import get_logger

logger = get_logger(__name__)

_PNL_RE = re.compile(r"^\s*([+-]?\d+(?:\.\d+)?)\s*%?\s*$")


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_pnl(value: Any) -> float | None:
    """Parse ``"+72.4%"``, ``"-100%"``, ``"12"`` or a number into a float percent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        match = _PNL_RE.match(value)
        if match:
            return float(match.group(1))
    return None


def format_pnl(value: float) -> str:
    return f"{value:+.1f}%"


class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PostLogEntry(Record):
    """A signal that was emitted to the channel."""

    slug: str
    question: str = ""
    score: int = 0
    timestamp: datetime
    threat_score: int | None = None
    yes_price: float | None = Field(default=None, alias="yesPrice")
    flow_direction: str | None = Field(default=None, alias="flowDirection")
    call_side: str | None = None
    entry_price: float | None = None
    condition_id: str | None = Field(default=None, alias="conditionId")
    channel: str | None = None

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, v: datetime) -> datetime | None:
        return _as_utc(v)


class Receipt(Record):
    """Authoritative record that an emitted signal has resolved."""

    slug: str
    question: str = ""
    signal_score: int | None = None
    entry_price: float | None = None
    outcome: str | None = None
    pnl: float | str | None = None
    correct: bool | None = None
    called_at: datetime | None = None
    resolved_at: datetime | None = None

    @field_validator("called_at", "resolved_at")
    @classmethod
    def dates_utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @property
    def pnl_value(self) -> float | None:
        return parse_pnl(self.pnl)


class ScannerFlag(Record):
    """A pre-public detection raised by the external scanner."""

    id: str
    market: str = ""
    slug: str | None = None
    original_flag_time: datetime
    original_flag_time_est: str | None = None
    original_price: float
    current_price: float | None = None
    peak_price: float | None = None
    flow_direction: str | None = None
    conviction: str | None = None
    scan_score: float | None = None
    summary: str | None = None
    next_trigger: str | None = None
    media_context: str | None = None

    @field_validator("original_flag_time")
    @classmethod
    def flag_time_utc(cls, v: datetime) -> datetime | None:
        return _as_utc(v)


class LiveProof(Record):
    """Price movement since a call, recorded before the market resolves."""

    slug: str | None = None
    id: str | None = None
    source: str | None = None
    type: str | None = None
    market: str | None = None
    current_price: float | None = None
    delta_from_signal: float | None = None
    delta_from_signal_str: str | None = None
    status: str | None = None
    implied_pnl: float | str | None = None
    notable: bool = False
    proof_text: str | None = None
    updated_at: datetime | None = None


class LiveProofs(BaseModel):
    generated_at: datetime
    total_proofs: int = 0
    notable_count: int = 0
    proofs: list[LiveProof] = Field(default_factory=list)


class ScorecardStats(BaseModel):
    total_calls: int = 0
    resolved: int = 0
    open: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: str | None = None
    cumulative_pnl: str | None = None


class ScorecardCall(Record):
    slug: str
    question: str = ""
    signal_score: int | None = None
    entry_price: float | None = None
    flow_direction: str | None = None
    call_side: str | None = None
    called_at: datetime | None = None
    status: str
    outcome: str | None = None
    pnl: str | None = None
    correct: bool | None = None
    resolved_at: datetime | None = None
    current_price: float | None = None
    delta_from_signal: str | None = None


class Scorecard(BaseModel):
    stats: ScorecardStats = Field(default_factory=ScorecardStats)
    calls: list[ScorecardCall] = Field(default_factory=list)
    scanner_flags: list[dict[str, Any]] = Field(default_factory=list)
    updated_at: datetime


def parse_records(raw: Any, model: type[Record], *, source: str) -> list[Any]:
    """Validate a list document record by record, skipping malformed ones."""
    if not isinstance(raw, list):
        return []
    records = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            records.append(model.model_validate(item))
        except ValueError as e:
            logger.warning("Skipping malformed record", source=source, error=str(e))
    return records
