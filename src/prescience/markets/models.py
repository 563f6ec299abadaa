"""Parsed market and trade records.

Upstream returns ``outcomes`` / ``outcomePrices`` as JSON-encoded strings and
numeric fields as strings or numbers. A malformed field degrades to an
empty/zero value instead of failing the batch.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from prescience.core.logging import get_logger

logger = get_logger(__name__)


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _parse_json_list(raw: Any) -> list[Any] | None:
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, str) or not raw:
        return None
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, list) else None


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware datetime."""
    if not raw or not isinstance(raw, str):
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class Market:
    """A prediction market as returned by the Gamma ``/markets`` endpoint."""

    condition_id: str
    question: str
    slug: str | None = None
    outcomes: list[str] = field(default_factory=list)
    outcome_prices: list[float] = field(default_factory=list)
    volume_24h: float = 0.0
    volume_total: float = 0.0
    liquidity: float = 0.0
    end_date: datetime | None = None
    end_date_raw: str | None = None
    active: bool = True
    closed: bool = False

    @property
    def key(self) -> str:
        """Stable identifier for dedup and linking (slug, else condition id)."""
        return self.slug or self.condition_id

    @property
    def is_binary(self) -> bool:
        return len(self.outcomes) == 2 and len(self.outcome_prices) == 2

    @property
    def max_price(self) -> float | None:
        return max(self.outcome_prices) if self.outcome_prices else None

    @property
    def min_price(self) -> float | None:
        return min(self.outcome_prices) if self.outcome_prices else None

    @property
    def current_prices(self) -> dict[str, float]:
        return dict(zip(self.outcomes, self.outcome_prices, strict=False))

    @property
    def majority_index(self) -> int | None:
        """Index of the outcome with price >= 0.5 (first one on a tie)."""
        if not self.outcome_prices:
            return None
        for i, price in enumerate(self.outcome_prices):
            if price >= 0.5:
                return i
        return max(range(len(self.outcome_prices)), key=lambda i: self.outcome_prices[i])

    @property
    def yes_price(self) -> float | None:
        """Price of the "Yes" outcome, falling back to the first outcome."""
        if not self.outcome_prices:
            return None
        for name, price in zip(self.outcomes, self.outcome_prices, strict=False):
            if name.strip().lower() == "yes":
                return price
        return self.outcome_prices[0]

    def outcome_index(self, name: str | None) -> int | None:
        if not name or not isinstance(name, str):
            return None
        target = name.strip().lower()
        for i, outcome in enumerate(self.outcomes):
            if outcome.strip().lower() == target:
                return i
        return None

    def hours_to_expiry(self, now: datetime) -> float | None:
        if self.end_date is None:
            return None
        return (self.end_date - now).total_seconds() / 3600

    def is_expired(self, now: datetime) -> bool:
        return self.end_date is not None and self.end_date <= now

    def url(self, site_url: str) -> str:
        return f"{site_url.rstrip('/')}/market/{self.key}"


@dataclass
class Trade:
    """A single fill from the Data API ``/trades`` endpoint."""

    wallet: str
    timestamp: int
    size: float
    price: float
    side: Literal["BUY", "SELL"]
    outcome: str | None = None
    outcome_index: int | None = None

    @property
    def notional(self) -> float:
        return self.size * self.price

    def resolve_outcome_index(self, market: Market) -> int | None:
        """Map this trade onto the market's outcome list (name first, then index)."""
        by_name = market.outcome_index(self.outcome)
        if by_name is not None:
            return by_name
        if self.outcome_index is not None and 0 <= self.outcome_index < len(market.outcomes):
            return self.outcome_index
        return None


def parse_market(data: dict[str, Any]) -> Market | None:
    """Parse a Gamma market payload; ``None`` when it lacks an id or question."""
    condition_id = data.get("conditionId")
    question = data.get("question")
    if not condition_id or not question:
        return None

    outcomes_raw = _parse_json_list(data.get("outcomes"))
    prices_raw = _parse_json_list(data.get("outcomePrices"))
    outcomes: list[str] = []
    prices: list[float] = []
    if outcomes_raw is not None and prices_raw is not None and len(outcomes_raw) == len(prices_raw):
        try:
            outcomes = [str(o) for o in outcomes_raw]
            prices = [float(p) for p in prices_raw]
        except (TypeError, ValueError):
            outcomes, prices = [], []
        if any(not (0.0 <= p <= 1.0) for p in prices):
            outcomes, prices = [], []
    if not outcomes and (data.get("outcomes") or data.get("outcomePrices")):
        logger.debug(
            "Malformed outcome arrays, treating as empty",
            condition_id=condition_id,
        )

    end_raw = data.get("endDate")
    return Market(
        condition_id=str(condition_id),
        question=str(question),
        slug=data.get("slug") or None,
        outcomes=outcomes,
        outcome_prices=prices,
        volume_24h=_to_float(data.get("volume24hr")),
        volume_total=_to_float(data.get("volumeNum", data.get("volume"))),
        liquidity=_to_float(data.get("liquidityNum", data.get("liquidity"))),
        end_date=parse_timestamp(end_raw),
        end_date_raw=end_raw if isinstance(end_raw, str) else None,
        active=bool(data.get("active", True)),
        closed=bool(data.get("closed", False)),
    )


def parse_trade(data: dict[str, Any]) -> Trade | None:
    """Parse a Data API trade payload; ``None`` when unusable."""
    wallet = data.get("proxyWallet")
    side = str(data.get("side", "")).upper()
    if not wallet or side not in ("BUY", "SELL"):
        return None
    try:
        raw_ts = float(data.get("timestamp", 0))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(raw_ts):
        return None
    timestamp = int(raw_ts)
    index_raw = data.get("outcomeIndex")
    try:
        outcome_index = int(index_raw) if index_raw is not None else None
    except (TypeError, ValueError, OverflowError):
        outcome_index = None
    outcome = data.get("outcome")
    return Trade(
        wallet=str(wallet).lower(),
        timestamp=timestamp,
        size=_to_float(data.get("size")),
        price=_to_float(data.get("price")),
        side="BUY" if side == "BUY" else "SELL",
        outcome=outcome if isinstance(outcome, str) else None,
        outcome_index=outcome_index,
    )
