"""Outbound notifications (Telegram Bot API)."""

from prescience.notifications.telegram import send_long_telegram, send_telegram

__all__ = ["send_long_telegram", "send_telegram"]
