"""Operator surfaces: HTTP API and Telegram chat."""

from signal_trader.api.operator import create_app
from signal_trader.api.telegram_bot import TelegramBot

__all__ = ["TelegramBot", "create_app"]
