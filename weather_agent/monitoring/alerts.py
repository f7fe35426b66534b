"""
Alert System

Sends notifications for important events via:
- Discord webhooks
- Telegram bots

Alert levels:
- INFO: Trade executions
- WARNING: Risk halts
- ERROR: Auth failures, invalid market data
- CRITICAL: Ledger failures, orders placed but not recorded

Alerting never fails a cycle: delivery errors are logged and dropped.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import httpx

from ..config import config
from .logger import get_logger

logger = get_logger("alerts")


class AlertLevel(Enum):
    """Alert severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class Alert:
    """An alert to be sent."""
    level: AlertLevel
    title: str
    message: str
    details: Optional[dict] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_discord_embed(self) -> dict:
        """Format as Discord embed."""
        colors = {
            AlertLevel.INFO: 0x3498db,      # Blue
            AlertLevel.WARNING: 0xf39c12,   # Orange
            AlertLevel.ERROR: 0xe74c3c,     # Red
            AlertLevel.CRITICAL: 0x9b59b6,  # Purple
        }

        embed = {
            "title": f"{self._level_emoji()} {self.title}",
            "description": self.message,
            "color": colors.get(self.level, 0x95a5a6),
            "timestamp": self.timestamp.isoformat(),
            "footer": {"text": "Weather Agent"},
        }

        if self.details:
            embed["fields"] = [
                {"name": k, "value": str(v), "inline": True}
                for k, v in self.details.items()
            ]

        return embed

    def to_telegram_message(self) -> str:
        """Format as Telegram message."""
        msg = f"{self._level_emoji()} *{self.title}*\n\n{self.message}"

        if self.details:
            msg += "\n\n*Details:*"
            for k, v in self.details.items():
                msg += f"\n• {k}: `{v}`"

        msg += f"\n\n_{self.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z')}_"
        return msg

    def _level_emoji(self) -> str:
        emojis = {
            AlertLevel.INFO: "ℹ️",
            AlertLevel.WARNING: "⚠️",
            AlertLevel.ERROR: "❌",
            AlertLevel.CRITICAL: "🚨",
        }
        return emojis.get(self.level, "📢")


class AlertManager:
    """
    Manages sending alerts to configured channels.
    """

    def __init__(
        self,
        discord_webhook: Optional[str] = None,
        telegram_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize alert manager.

        Args:
            discord_webhook: Discord webhook URL
            telegram_token: Telegram bot token
            telegram_chat_id: Telegram chat ID to send to
            client: HTTP client to post with (one is created if omitted)
        """
        self.discord_webhook = discord_webhook or config.alerts.discord_webhook_url
        self.telegram_token = telegram_token or config.alerts.telegram_bot_token
        self.telegram_chat_id = telegram_chat_id or config.alerts.telegram_chat_id

        self.client = client or httpx.AsyncClient(timeout=10.0)

        # Track sent alerts to avoid duplicates within one run
        self._recent_alerts: list[str] = []
        self._max_recent = 100

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def is_configured(self) -> bool:
        """Check if any alert channel is configured."""
        return bool(self.discord_webhook) or bool(self.telegram_token and self.telegram_chat_id)

    async def send(self, alert: Alert, dedupe: bool = True) -> bool:
        """
        Send an alert to all configured channels.

        Args:
            alert: Alert to send
            dedupe: Skip if the same alert was already sent

        Returns:
            True if alert was sent successfully to at least one channel
        """
        alert_key = f"{alert.level.value}:{alert.title}"
        if dedupe and alert_key in self._recent_alerts:
            return False

        self._recent_alerts.append(alert_key)
        if len(self._recent_alerts) > self._max_recent:
            self._recent_alerts.pop(0)

        if not self.is_configured:
            logger.debug(f"No alert channel configured, dropping: {alert.title}")
            return False

        success = False

        if self.discord_webhook:
            try:
                success = await self._send_discord(alert) or success
            except httpx.HTTPError as e:
                logger.warning(f"Discord alert failed: {e}")

        if self.telegram_token and self.telegram_chat_id:
            try:
                success = await self._send_telegram(alert) or success
            except httpx.HTTPError as e:
                logger.warning(f"Telegram alert failed: {e}")

        return success

    async def _send_discord(self, alert: Alert) -> bool:
        """Send alert to Discord webhook."""
        payload = {"embeds": [alert.to_discord_embed()]}
        response = await self.client.post(self.discord_webhook, json=payload)
        return response.status_code in (200, 204)

    async def _send_telegram(self, alert: Alert) -> bool:
        """Send alert to Telegram."""
        url = f"https://api.telegram.org/bot{self.telegram_token}/sendMessage"
        payload = {
            "chat_id": self.telegram_chat_id,
            "text": alert.to_telegram_message(),
            "parse_mode": "Markdown",
        }
        response = await self.client.post(url, json=payload)
        return response.status_code == 200

    # Convenience methods for common alerts

    async def trade_executed(
        self,
        ticker: str,
        side: str,
        shares: int,
        price_cents: int,
        order_id: str,
        paper: bool = False,
    ):
        """Send alert for a recorded trade."""
        mode = "Paper" if paper else "Live"
        alert = Alert(
            level=AlertLevel.INFO,
            title=f"{mode} Trade: {ticker}",
            message=f"Bought {shares}x {side.upper()} @ {price_cents}¢",
            details={
                "Cost": f"${shares * price_cents / 100:.2f}",
                "Order": order_id,
            },
        )
        await self.send(alert, dedupe=False)

    async def cycle_error(self, kind: str, stage: str, message: str):
        """Send alert for an error the operator has to look at."""
        alert = Alert(
            level=AlertLevel.ERROR,
            title=f"Cycle Error: {kind}",
            message=message,
            details={"Stage": stage},
        )
        await self.send(alert)

    async def unrecorded_order(self, order_id: str, error: str):
        """Send alert when an accepted order could not be written to the ledger."""
        alert = Alert(
            level=AlertLevel.CRITICAL,
            title="Order Placed But Not Recorded",
            message="Reconcile the ledger by hand before the next cycle",
            details={"Order": order_id, "Error": error},
        )
        await self.send(alert, dedupe=False)

    async def startup_failed(self, error: str):
        """Send alert when the agent refuses to start."""
        alert = Alert(
            level=AlertLevel.ERROR,
            title="Startup Failed",
            message=error,
        )
        await self.send(alert)
