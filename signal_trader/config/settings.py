"""
Configuration management with Pydantic validation.

Loads settings from YAML config file and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class BingXConfig(BaseModel):
    """BingX perpetual swap API configuration."""

    base_url: str = "https://open-api-vst.bingx.com"
    recv_window: int = Field(default=5000, ge=1000, le=60000)
    # Demo (VST) accounts require demoTrade=on on every signed request.
    demo_trade: bool = True
    request_timeout_sec: float = Field(default=10.0, ge=1.0, le=60.0)


class RiskConfig(BaseModel):
    """Position sizing configuration."""

    risk_per_trade_pct: float = Field(default=1.0, gt=0.0, le=100.0)
    quantity_step: float = Field(default=0.001, gt=0.0)
    max_leverage: int = Field(default=125, ge=1, le=125)


class TrailingStopConfig(BaseModel):
    """Client-side trailing stop configuration."""

    offset_pct: float = Field(default=0.5, gt=0.0, lt=100.0)
    # Send a reduce-only market close when the client-side stop is breached.
    close_on_trigger: bool = False


class ReconciliationConfig(BaseModel):
    """Polling reconciliation loop configuration."""

    enabled: bool = True
    autostart: bool = True
    interval_sec: float = Field(default=30.0, ge=1.0, le=3600.0)
    history_limit: int = Field(default=50, ge=1, le=1000)
    failure_threshold: int = Field(default=3, ge=1, le=100)
    history_failure_policy: Literal["assume_closed", "skip_cycle"] = "assume_closed"


class TelegramConfig(BaseModel):
    """Telegram chat transport configuration."""

    enabled: bool = True
    base_url: str = "https://api.telegram.org"
    poll_timeout_sec: int = Field(default=20, ge=0, le=50)
    retry_delay_sec: float = Field(default=5.0, ge=0.0, le=300.0)


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    state_path: str = "./data/state"
    logs_path: str = "./logs"


class MonitoringConfig(BaseModel):
    """Monitoring and operator API configuration."""

    metrics_enabled: bool = True
    metrics_port: int = Field(default=9090, ge=1024, le=65535)
    api_enabled: bool = True
    api_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_http: bool = False
    log_http_max_body_chars: int = Field(default=500, ge=0, le=5000)
    error_log_max_bytes: int = Field(default=5_000_000, ge=100_000, le=50_000_000)
    error_log_backup_count: int = Field(default=3, ge=1, le=20)


class Settings(BaseSettings):
    """Main application settings."""

    # API credentials from environment
    bingx_api_key: str = Field(default="", alias="BINGX_API_KEY")
    bingx_secret_key: str = Field(default="", alias="BINGX_SECRET_KEY")
    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: str = Field(default="", alias="TELEGRAM_CHAT_ID")

    # Sub-configurations
    bingx: BingXConfig = Field(default_factory=BingXConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    trailing_stop: TrailingStopConfig = Field(default_factory=TrailingStopConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "populate_by_name": True,
    }

    @field_validator("telegram_chat_id", mode="before")
    @classmethod
    def coerce_chat_id(cls, v: object) -> str:
        return "" if v is None else str(v).strip()

    @property
    def ledger_file(self) -> Path:
        """Location of the active-orders snapshot."""
        return Path(self.storage.state_path) / "active_orders.json"

    @property
    def telegram_active(self) -> bool:
        return bool(self.telegram.enabled and self.telegram_bot_token and self.telegram_chat_id)

    def validate_for_trading(self) -> list[str]:
        """Validate settings are suitable for trading. Returns list of errors."""
        errors = []
        if not self.bingx_api_key:
            errors.append("BINGX_API_KEY not set")
        if not self.bingx_secret_key:
            errors.append("BINGX_SECRET_KEY not set")
        if self.telegram.enabled and self.telegram_bot_token and not self.telegram_chat_id:
            errors.append("TELEGRAM_CHAT_ID not set while TELEGRAM_BOT_TOKEN is configured")
        return errors


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings from YAML config file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file values
    3. Default values
    """
    config_data = {}

    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config_data = yaml.safe_load(f) or {}

    env_path = config_file.parent / ".env"
    return Settings(**config_data, _env_file=env_path)


def create_default_config(path: str | Path = "config.yaml") -> None:
    """Create a default configuration file."""
    default_config = {
        "bingx": {
            "base_url": "https://open-api-vst.bingx.com",
            "recv_window": 5000,
            "demo_trade": True,
            "request_timeout_sec": 10.0,
        },
        "risk": {
            "risk_per_trade_pct": 1.0,
            "quantity_step": 0.001,
        },
        "trailing_stop": {
            "offset_pct": 0.5,
            "close_on_trigger": False,
        },
        "reconciliation": {
            "enabled": True,
            "autostart": True,
            "interval_sec": 30,
            "history_limit": 50,
            "failure_threshold": 3,
            "history_failure_policy": "assume_closed",
        },
        "telegram": {
            "enabled": True,
            "poll_timeout_sec": 20,
        },
        "storage": {
            "state_path": "./data/state",
            "logs_path": "./logs",
        },
        "monitoring": {
            "metrics_enabled": True,
            "metrics_port": 9090,
            "api_enabled": True,
            "api_port": 8000,
            "log_level": "INFO",
            "log_http": False,
            "log_http_max_body_chars": 500,
            "error_log_max_bytes": 5000000,
            "error_log_backup_count": 3,
        },
    }

    with open(path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
