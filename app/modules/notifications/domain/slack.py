"""
Slack delivery for CloudWise notifications.
Posts alert attachments to a single configured channel.
"""
import asyncio
from typing import Optional

import structlog
from slack_sdk.web.async_client import AsyncWebClient
from slack_sdk.errors import SlackApiError

from app.shared.core.config import get_settings

logger = structlog.get_logger()


class SlackService:
    """Service for sending notifications to Slack."""

    SEVERITY_COLORS = {
        "critical": "#f43f5e",  # Red
        "high": "#f97316",      # Orange
        "medium": "#f59e0b",    # Amber
        "low": "#3b82f6",       # Blue
        "info": "#10b981",      # Green
    }

    @staticmethod
    def escape_mrkdwn(text: str) -> str:
        """
        Escape Slack control characters to prevent mrkdwn injection.
        References: https://api.slack.com/reference/surfaces/formatting#escaping
        """
        if not text:
            return ""
        return (
            str(text)
            .replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
        )

    def __init__(self, bot_token: str, channel_id: str, max_retries: int = 3):
        self.client = AsyncWebClient(token=bot_token)
        self.channel_id = channel_id
        self.max_retries = max_retries

    async def _send_with_retry(self, method: str, **kwargs) -> bool:
        """Slack API call with backoff on rate limiting. Other errors are logged, not raised."""
        for attempt in range(self.max_retries + 1):
            try:
                await getattr(self.client, method)(**kwargs)
                return True
            except SlackApiError as e:
                error_code = e.response.get("error", "")
                if error_code == "ratelimited" and attempt < self.max_retries:
                    retry_after = int(e.response.headers.get("Retry-After", 2 ** attempt))
                    logger.warning("slack_rate_limited", retry_after=retry_after, attempt=attempt)
                    await asyncio.sleep(retry_after)
                    continue
                logger.error("slack_api_error", method=method, error=error_code)
                return False
        return False

    async def send_alert(self, title: str, message: str, severity: str = "info") -> bool:
        color = self.SEVERITY_COLORS.get(severity, self.SEVERITY_COLORS["info"])
        return await self._send_with_retry(
            "chat_postMessage",
            channel=self.channel_id,
            text=title,
            attachments=[
                {
                    "color": color,
                    "blocks": [
                        {
                            "type": "header",
                            "text": {"type": "plain_text", "text": title[:150]}
                        },
                        {
                            "type": "section",
                            "text": {"type": "mrkdwn", "text": message}
                        },
                    ]
                }
            ]
        )

    async def notify_recommendation_implemented(self, title: str, provider: str, potential_savings: float) -> bool:
        message = (
            f"*Recommendation:* {self.escape_mrkdwn(title)}\n"
            f"*Provider:* {self.escape_mrkdwn(provider.upper())}\n"
            f"*Monthly Savings:* ${potential_savings:.2f}"
        )
        return await self.send_alert("Recommendation Implemented", message, severity="info")

    async def notify_account_connected(self, name: str, provider: str, external_id: str) -> bool:
        message = (
            f"*Account:* {self.escape_mrkdwn(name)}\n"
            f"*Provider:* {self.escape_mrkdwn(provider.upper())}\n"
            f"*Identifier:* `{self.escape_mrkdwn(external_id)}`"
        )
        return await self.send_alert("Cloud Account Connected", message, severity="info")


def get_slack_service() -> Optional[SlackService]:
    """
    Factory function to get a configured SlackService instance.
    Returns None if Slack is not configured.
    """
    settings = get_settings()

    if settings.SLACK_BOT_TOKEN and settings.SLACK_CHANNEL_ID:
        return SlackService(settings.SLACK_BOT_TOKEN, settings.SLACK_CHANNEL_ID)
    return None
