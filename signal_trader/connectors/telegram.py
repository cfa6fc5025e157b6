"""Minimal async Telegram Bot API client (long polling)."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

MAX_MESSAGE_CHARS = 4096


class TelegramError(Exception):
    """Raised when a Bot API call fails."""

    pass


class TelegramClient:
    def __init__(
        self,
        token: str,
        base_url: str = "https://api.telegram.org",
        poll_timeout_sec: int = 20,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.poll_timeout_sec = poll_timeout_sec
        self.http = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/bot{token}",
            # Long polling holds the connection open for poll_timeout_sec.
            timeout=poll_timeout_sec + 10.0,
            transport=transport,
        )
        self.log = structlog.get_logger(__name__)

    async def close(self) -> None:
        await self.http.aclose()

    async def get_updates(self, offset: int | None = None) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {
            "timeout": self.poll_timeout_sec,
            "allowed_updates": ["message", "channel_post"],
        }
        if offset is not None:
            payload["offset"] = offset
        result = await self._call("getUpdates", payload)
        return [update for update in result if isinstance(update, dict)] if isinstance(result, list) else []

    async def send_message(self, chat_id: str | int, text: str) -> None:
        for start in range(0, max(len(text), 1), MAX_MESSAGE_CHARS):
            await self._call(
                "sendMessage",
                {"chat_id": chat_id, "text": text[start : start + MAX_MESSAGE_CHARS]},
            )

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self.http.post(f"/{method}", json=payload)
            body = response.json()
        except httpx.RequestError as exc:
            raise TelegramError(f"{method} request failed: {exc}") from exc
        except ValueError as exc:
            raise TelegramError(f"{method} returned invalid JSON") from exc
        if not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description") if isinstance(body, dict) else None
            raise TelegramError(f"{method} failed: {description or response.status_code}")
        return body.get("result")
