"""Telegram chat front end: commands and signal messages from one chat."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog

from signal_trader.connectors.bingx_client import ExchangeError
from signal_trader.connectors.telegram import TelegramClient, TelegramError
from signal_trader.execution.intake import SignalIntake
from signal_trader.execution.reconciliation import ReconciliationEngine
from signal_trader.monitoring.report import (
    format_balance,
    format_intake_result,
    format_report,
    format_stats,
    format_status,
)
from signal_trader.signals.parser import is_signal_message

if TYPE_CHECKING:
    from signal_trader.monitoring.metrics import Metrics

HELP_TEXT = (
    "Commands:\n"
    "/status - monitoring and ledger status\n"
    "/balance - account balance\n"
    "/stats - signal and closure counters\n"
    "/report - managed orders, positions and balance\n"
    "/start - start monitoring\n"
    "/stop - stop monitoring\n"
    "/test - check the bot is alive\n"
    "/help - show this help\n\n"
    "Signals use this format:\n"
    "🟢 LONG (SYMBOL)\n"
    "Entrys: price1 - price2\n"
    "Leverage: 5X\n"
    "Tps: tp1 - tp2 - tp3\n"
    "Stop Loss: price"
)


def extract_message(update: dict[str, Any]) -> tuple[str, str] | None:
    """Return (chat_id, text) of a text message update, else None."""
    message = update.get("message") or update.get("channel_post")
    if not isinstance(message, dict):
        return None
    text = message.get("text")
    chat = message.get("chat")
    if not isinstance(text, str) or not isinstance(chat, dict) or chat.get("id") is None:
        return None
    return str(chat["id"]), text


def command_name(text: str) -> str | None:
    """`/report@my_bot args` -> `report`."""
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    head = stripped.split(maxsplit=1)[0][1:]
    return head.split("@", 1)[0].lower() or None


class TelegramBot:
    """Long-poll the Bot API and answer messages from the configured chat."""

    def __init__(
        self,
        client: TelegramClient,
        chat_id: str,
        engine: ReconciliationEngine,
        intake: SignalIntake,
        retry_delay_sec: float = 5.0,
        metrics: Metrics | None = None,
    ) -> None:
        self.client = client
        self.chat_id = str(chat_id)
        self.engine = engine
        self.intake = intake
        self.retry_delay_sec = retry_delay_sec
        self._metrics = metrics
        self._offset: int | None = None
        self.log = structlog.get_logger(__name__)
        self._commands = {
            "start": self._cmd_start,
            "stop": self._cmd_stop,
            "status": self._cmd_status,
            "report": self._cmd_report,
            "balance": self._cmd_balance,
            "stats": self._cmd_stats,
            "test": self._cmd_test,
            "help": self._cmd_help,
        }

    async def run(self) -> None:
        last_tick = time.time()
        while True:
            now = time.time()
            if self._metrics is not None:
                self._metrics.loop_last_tick_age_sec.labels(loop="telegram").set(now - last_tick)
            last_tick = now
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except TelegramError as exc:
                self.log.warning("telegram_poll_failed", error=str(exc))
                await asyncio.sleep(self.retry_delay_sec)
            except Exception as exc:
                self.log.exception("telegram_loop_error", error=str(exc))
                await asyncio.sleep(self.retry_delay_sec)

    async def poll_once(self) -> int:
        updates = await self.client.get_updates(self._offset)
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self._offset = update_id + 1
            await self.handle_update(update)
        return len(updates)

    async def handle_update(self, update: dict[str, Any]) -> str | None:
        """Answer one update; returns the reply sent, if any."""
        extracted = extract_message(update)
        if extracted is None:
            return None
        chat_id, text = extracted
        if chat_id != self.chat_id:
            self.log.debug("telegram_foreign_chat_ignored", chat_id=chat_id)
            return None

        reply = await self.reply_for(text)
        if reply is None:
            return None
        try:
            await self.client.send_message(self.chat_id, reply)
        except TelegramError as exc:
            self.log.warning("telegram_reply_failed", error=str(exc))
        return reply

    async def reply_for(self, text: str) -> str | None:
        command = command_name(text)
        if command is not None:
            handler = self._commands.get(command)
            if handler is None:
                return f"Unknown command /{command}. Send /help for the list."
            return await handler()
        if not is_signal_message(text):
            self.log.debug("telegram_message_not_signal")
            return None
        self.log.info("telegram_signal_received")
        result = await self.intake.submit(text)
        return format_intake_result(result)

    async def _cmd_start(self) -> str:
        changed = self.engine.start()
        return "Monitoring started" if changed else "Monitoring is already running"

    async def _cmd_stop(self) -> str:
        changed = self.engine.stop()
        return "Monitoring stopped" if changed else "Monitoring is not running"

    async def _cmd_status(self) -> str:
        return format_status(self.engine.status())

    async def _cmd_report(self) -> str:
        positions = None
        balance = None
        try:
            positions = await self.engine.live_positions()
            balance = await self.intake.gateway.get_available_balance()
        except ExchangeError as exc:
            self.log.warning("telegram_report_exchange_failed", error=str(exc))
        return format_report(self.engine.ledger_snapshot(), positions, balance)

    async def _cmd_balance(self) -> str:
        try:
            balance = await self.intake.gateway.get_available_balance()
        except ExchangeError as exc:
            return f"Could not fetch balance: {exc}"
        return format_balance(balance)

    async def _cmd_stats(self) -> str:
        stats = self.engine.stats()
        stats["signals_accepted"] = self.intake.accepted_count
        stats["signals_rejected"] = self.intake.rejected_count
        return format_stats(stats)

    async def _cmd_test(self) -> str:
        return "Bot is running"

    async def _cmd_help(self) -> str:
        return HELP_TEXT
