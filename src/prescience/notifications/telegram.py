"""Telegram notification service.

Sends published signals and resolution receipts to the community channel
through the Bot API, and renders both message templates.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import httpx

from prescience.config import get_settings
from prescience.core.constants import (
    DEFAULT_DAYS_TO_RESOLUTION,
    TELEGRAM_MAX_MESSAGE_LENGTH,
    THREAT_LEVEL_HIGH,
    THREAT_LEVEL_MEDIUM,
)
from prescience.core.logging import get_logger
from prescience.storage.models import format_pnl

if TYPE_CHECKING:
    from prescience.processing.models import CallScore, MarketSnapshot
    from prescience.storage.models import Receipt

logger = get_logger(__name__)

TELEGRAM_TIMEOUT = 10.0
TELEGRAM_API_URL = "https://api.telegram.org"

# Section separator (10 chars max for mobile)
SECTION_SEPARATOR = "━━━━━━━━━━"

FOOTER = "<i>Prescience — See who sees first.</i>"


def _escape_html(text: str) -> str:
    """Escape HTML special characters for Telegram."""
    return (
        text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")
    )


def _split_message_at_sections(
    message: str, max_length: int = TELEGRAM_MAX_MESSAGE_LENGTH
) -> list[str]:
    """Split a long message into chunks at section separators (or newlines).

    Multi-part messages get ``⋯ i/n`` part indicators.
    """
    if len(message) <= max_length:
        return [message]

    effective_max = max_length - 40
    chunks: list[str] = []
    remaining = message
    while remaining:
        if len(remaining) <= effective_max:
            chunks.append(remaining)
            break
        window = remaining[:effective_max]
        split_at = window.rfind(SECTION_SEPARATOR)
        if split_at <= 0:
            split_at = window.rfind("\n")
        if split_at <= effective_max // 2:
            split_at = effective_max
        chunks.append(remaining[:split_at].rstrip())
        remaining = remaining[split_at:].lstrip("\n")

    total = len(chunks)
    if total > 1:
        for i in range(total):
            if i < total - 1:
                chunks[i] += f"\n\n<i>⋯ {i + 1}/{total}</i>"
            if i > 0:
                chunks[i] = f"<i>⋯ {i + 1}/{total}</i>\n\n" + chunks[i]
    return chunks


async def send_telegram(
    message: str, parse_mode: str = "HTML", chat_id: str | None = None
) -> bool:
    """Send a message to the configured (or given) Telegram chat.

    Returns:
        True if the Bot API accepted the message, False otherwise
    """
    settings = get_settings()

    if not settings.telegram_bot_token:
        logger.warning("Telegram bot token not configured, skipping notification")
        return False

    target = chat_id or settings.telegram_chat_id
    if not target:
        logger.warning("Telegram chat ID not configured, skipping notification")
        return False

    url = f"{TELEGRAM_API_URL}/bot{settings.telegram_bot_token.get_secret_value()}/sendMessage"
    payload = {
        "chat_id": target,
        "text": message,
        "parse_mode": parse_mode,
        "disable_web_page_preview": True,
    }

    try:
        async with httpx.AsyncClient(timeout=TELEGRAM_TIMEOUT) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            result = response.json()
            if result.get("ok"):
                logger.debug("Telegram message sent successfully")
                return True
            logger.warning("Telegram API returned error", error=result.get("description"))
            return False
    except httpx.HTTPError as e:
        logger.error("Failed to send Telegram message", error=str(e))
        return False
    except (json.JSONDecodeError, KeyError) as e:
        logger.error("Failed to parse Telegram API response", error=str(e))
        return False


async def send_long_telegram(
    message: str, parse_mode: str = "HTML", chat_id: str | None = None
) -> bool:
    """Send a potentially long message, splitting into multiple if needed."""
    chunks = _split_message_at_sections(message)
    all_sent = True
    for i, chunk in enumerate(chunks):
        if not await send_telegram(chunk, parse_mode, chat_id=chat_id):
            logger.warning("Failed to send message chunk", chunk_index=i, total_chunks=len(chunks))
            all_sent = False
    return all_sent


# ───────────────────────────────────────────────────────────────
# Formatting
# ───────────────────────────────────────────────────────────────


def threat_emoji(threat_score: int) -> str:
    """Same thresholds as the scanner's threat levels (high / medium / below)."""
    if threat_score >= THREAT_LEVEL_HIGH:
        return "🔴"
    if threat_score >= THREAT_LEVEL_MEDIUM:
        return "🟡"
    return "🟢"


def _format_usd_k(value: float) -> str:
    return f"${value / 1000:.0f}K"


def _format_cents(price: float) -> str:
    return f"{price * 100:.0f}¢"


def format_signal_message(snapshot: MarketSnapshot, call: CallScore, site_url: str) -> str:
    """Render a published signal."""
    volume = snapshot.volume_total or snapshot.total_volume_usd
    lines = [
        f"🎯 <b>PRESCIENCE SIGNAL</b> — Score {call.score}/12",
        "",
        f"<b>{_escape_html(snapshot.question)}</b>",
        "",
        f"{threat_emoji(snapshot.threat_score)} Threat: {snapshot.threat_score}/100 "
        f"({snapshot.threat_level})",
        f"💰 Volume: {_format_usd_k(volume)}",
        f"👛 Wallets: {snapshot.total_wallets} ({snapshot.fresh_wallets} fresh)",
    ]
    if snapshot.flow_direction_v2 != "NEUTRAL":
        minority = _escape_html(snapshot.minority_outcome or "minority")
        lines.append(
            f"📡 Flow: {snapshot.flow_direction_v2} — "
            f"{_format_usd_k(snapshot.minority_side_flow_usd)} {minority}"
        )
    if snapshot.veteran_note:
        lines.append(f"🏦 {_escape_html(snapshot.veteran_note)}")

    prices = snapshot.current_prices
    if "Yes" in prices and "No" in prices:
        lines.append(f"📈 YES {_format_cents(prices['Yes'])} | NO {_format_cents(prices['No'])}")
    elif len(prices) == 2:
        lines.append(
            " | ".join(f"{_escape_html(name)} {_format_cents(p)}" for name, p in prices.items())
        )
    if call.days_to_resolution < DEFAULT_DAYS_TO_RESOLUTION:
        lines.append(f"⏳ {call.days_to_resolution}d to resolution")

    link = f"{site_url.rstrip('/')}/market/{snapshot.key}"
    lines += [
        "",
        f"💡 {_escape_html(' • '.join(call.reasons))}",
        "",
        f'🔗 <a href="{link}">View on Prescience</a>',
        "",
        FOOTER,
    ]
    return "\n".join(lines)


def format_receipt_message(receipt: Receipt, site_url: str) -> str:
    """Render a resolution receipt for a previously published signal."""
    verdict = "✅ <b>CALLED IT</b>" if receipt.correct else "❌ <b>MISSED</b>"
    lines = [
        f"🧾 <b>PRESCIENCE RECEIPT</b> — {verdict}",
        "",
        f"<b>{_escape_html(receipt.question or receipt.slug)}</b>",
        "",
        f"🏁 Resolved: {_escape_html(receipt.outcome or 'unknown')}",
    ]
    if receipt.entry_price is not None:
        lines.append(f"🎯 Entry: {_format_cents(receipt.entry_price)}")
    pnl = receipt.pnl_value
    if pnl is not None:
        lines.append(f"📊 P&amp;L: {format_pnl(pnl)}")
    if receipt.called_at is not None:
        lines.append(f"📅 Called: {receipt.called_at:%Y-%m-%d}")
    lines += [
        "",
        f'🔗 <a href="{site_url.rstrip("/")}/scorecard">Full scorecard</a>',
        "",
        FOOTER,
    ]
    return "\n".join(lines)
