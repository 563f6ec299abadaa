"""False-positive dampening rules.

Extreme-consensus markets with no real opposing flow, meme and
entertainment markets, near-expiry convergence and daily recurring markets
all produce wallet patterns that look anomalous but are normal for them.
Each rule proposes a factor; the strongest one wins and the threat score is
scaled by ``1 - factor``.
"""

from __future__ import annotations

import re
from datetime import datetime

from prescience.markets.models import Market
from prescience.processing.models import DampeningResult

EXTREME_CONSENSUS_PRICE = 0.97
EXTREME_CONSENSUS_FACTOR = 0.5

SPORTS_KEYWORDS = (
    "nba", "nfl", "mlb", "nhl", "premier league", "champions league", "serie a",
    "la liga", "bundesliga", "super bowl", "playoff", "finals", "world cup", "match",
    "game", "lakers", "celtics", "warriors", "yankees", "dodgers", "chiefs", "eagles",
    "manchester", "liverpool", "arsenal", "chelsea", "barcelona", "real madrid",
    "bruins", "maple leafs", "oilers", "avalanche", "points", "rebounds", "assists",
    "rushing yards", "passing yards", "mvp", "rookie of the year", "all-star",
    "draft pick", "over under", "spread", "moneyline", "win", "score", "goal",
)

MEME_KEYWORDS = (
    "tweet", "tiktok", "instagram", "follower", "subscriber", "viral", "meme", "doge",
    "pepe", "shib", "bonk", "wojak", "fartcoin", "streamer", "youtuber", "influencer",
    "celebrity", "kardashian", "jake paul", "logan paul", "mr beast", "will say",
    "will post", "will wear", "will eat", "onlyfans", "reality tv", "bachelor",
    "love island",
)

ENTERTAINMENT_KEYWORDS = (
    "oscar", "grammy", "emmy", "golden globe", "box office", "album", "movie",
    "tv show", "netflix", "disney", "taylor swift", "beyonce", "drake", "kanye",
    "concert", "tour",
)

DAILY_PATTERNS = ("today", "tonight", "this evening", "by midnight", "by end of day", "daily")

# "win" is ambiguous in election markets
_POLITICAL_RE = re.compile(
    r"presidential|nomination|nominee|election|senate race|governor race|congress",
    re.IGNORECASE,
)


def _keyword_hits(question: str, keywords: tuple[str, ...]) -> list[str]:
    return [kw for kw in keywords if re.search(rf"\b{re.escape(kw)}\b", question)]


def compute_dampening(
    market: Market,
    now: datetime,
    *,
    minority_flow_usd: float | None = None,
    thin_opposing_usd: float = 500.0,
) -> DampeningResult:
    """Evaluate every rule and keep the strongest factor.

    ``minority_flow_usd`` is the net buy flow into the minority outcome; when
    it is below ``thin_opposing_usd`` on a market priced above 97c the
    consensus is treated as settled and dampened.
    """
    question = market.question.lower()
    factor = 0.0
    reasons: list[str] = []

    def propose(value: float, reason: str) -> None:
        nonlocal factor
        factor = max(factor, value)
        reasons.append(reason)

    max_price = market.max_price
    min_price = market.min_price

    if max_price is not None and max_price > EXTREME_CONSENSUS_PRICE:
        opposing = max(0.0, minority_flow_usd or 0.0)
        if opposing < thin_opposing_usd:
            propose(EXTREME_CONSENSUS_FACTOR, f"extreme_consensus({round(max_price * 100)}¢)")

    sports = _keyword_hits(question, SPORTS_KEYWORDS)
    if _POLITICAL_RE.search(question):
        sports = [kw for kw in sports if kw != "win"]
    if len(sports) >= 2:
        propose(0.3, f"sports_market({','.join(sports[:2])})")

    meme = _keyword_hits(question, MEME_KEYWORDS)
    if meme:
        propose(0.5, f"meme_market({meme[0]})")

    entertainment = _keyword_hits(question, ENTERTAINMENT_KEYWORDS)
    if entertainment:
        propose(0.2, f"entertainment({entertainment[0]})")

    if min_price is not None and min_price < 0.05:
        propose(0.5, "micro_price(<5¢)")

    hours = market.hours_to_expiry(now)
    if hours is not None and hours > 0:
        if hours <= 48 and max_price is not None and max_price >= 0.90:
            propose(0.4, f"expiry_convergence({round(hours)}h,{round(max_price * 100)}¢)")
        if hours <= 6:
            propose(0.6, "imminent_expiry(<6h)")

    if any(p in question for p in DAILY_PATTERNS):
        propose(0.25, "daily_recurring")

    return DampeningResult(
        is_dampened=factor > 0,
        factor=factor,
        reason="; ".join(reasons) if reasons else None,
    )


def apply_dampening(raw_score: float, factor: float) -> int:
    """``raw * (1 - factor)`` rounded half-up."""
    return int(raw_score * (1 - factor) + 0.5)
