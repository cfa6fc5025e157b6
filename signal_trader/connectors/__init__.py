"""Exchange and chat connectors module."""

from signal_trader.connectors.bingx_client import BingXRestClient, ExchangeError
from signal_trader.connectors.gateway import ExchangeGateway
from signal_trader.connectors.telegram import TelegramClient, TelegramError

__all__ = [
    "BingXRestClient",
    "ExchangeError",
    "ExchangeGateway",
    "TelegramClient",
    "TelegramError",
]
