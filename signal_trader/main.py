"""Main runtime for the signal trader."""

from __future__ import annotations

import asyncio
import sys

import structlog
import uvicorn

from signal_trader.api.operator import create_app
from signal_trader.api.telegram_bot import TelegramBot
from signal_trader.config.settings import load_settings
from signal_trader.connectors import BingXRestClient, TelegramClient
from signal_trader.execution import ReconciliationEngine, SignalIntake, TrailingStopController
from signal_trader.ledger import LedgerSnapshotStore, PositionLedger
from signal_trader.monitoring import Metrics, configure_logging

log = structlog.get_logger(__name__)


async def main_async() -> None:
    settings = load_settings()
    configure_logging(settings.monitoring.log_level, settings.storage.logs_path, settings.monitoring)
    if sys.version_info < (3, 10):
        log.warning(
            "python_version_unverified",
            version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        )
    errors = settings.validate_for_trading()
    if errors:
        log.error("settings_validation_failed", errors=errors)
        return

    metrics = Metrics()
    if settings.monitoring.metrics_enabled:
        metrics.start(settings.monitoring.metrics_port)

    ledger = PositionLedger(LedgerSnapshotStore(settings.ledger_file))
    await ledger.load()
    metrics.managed_orders.set(len(ledger))

    rest = BingXRestClient(settings)
    trailing = TrailingStopController(rest, ledger, settings.trailing_stop, metrics)
    engine = ReconciliationEngine(rest, ledger, trailing, settings.reconciliation, metrics)
    intake = SignalIntake(rest, ledger, settings.risk, metrics)

    if settings.reconciliation.enabled and settings.reconciliation.autostart:
        engine.start()

    log.info(
        "bot_started",
        base_url=settings.bingx.base_url,
        demo_trade=settings.bingx.demo_trade,
        managed_orders=len(ledger),
        monitoring=engine.is_running,
        telegram=settings.telegram_active,
    )

    async def reconciliation_loop() -> None:
        if not settings.reconciliation.enabled:
            log.info("reconciliation_disabled")
            return
        await engine.run()

    async def api_server() -> None:
        """Run the operator API server."""
        if not settings.monitoring.api_enabled:
            return
        try:
            config = uvicorn.Config(
                create_app(engine, intake),
                host="127.0.0.1",
                port=settings.monitoring.api_port,
                log_level="info",
            )
            server = uvicorn.Server(config)
            await server.serve()
        except Exception as exc:
            log.warning("api_server_failed", error=str(exc))

    async def telegram_loop() -> None:
        if not settings.telegram_active:
            log.info("telegram_disabled")
            return
        client = TelegramClient(
            settings.telegram_bot_token,
            base_url=settings.telegram.base_url,
            poll_timeout_sec=settings.telegram.poll_timeout_sec,
        )
        bot = TelegramBot(
            client,
            settings.telegram_chat_id,
            engine,
            intake,
            retry_delay_sec=settings.telegram.retry_delay_sec,
            metrics=metrics,
        )
        try:
            await bot.run()
        finally:
            await client.close()

    try:
        await asyncio.gather(
            reconciliation_loop(),
            api_server(),
            telegram_loop(),
            return_exceptions=True,
        )
    finally:
        await rest.close()
        log.info("bot_stopped", managed_orders=len(ledger))


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
