"""
Notification Dispatcher

Subscribes to domain events and routes them to delivery channels.
Slack is the only channel; without Slack settings events are only logged.
"""

import structlog
from app.modules.notifications.domain.events import (
    AccountConnected,
    DomainEvent,
    EventBus,
    RecommendationImplemented,
)
from app.modules.notifications.domain.slack import get_slack_service

logger = structlog.get_logger()


class NotificationDispatcher:
    """Routes domain events to the configured providers."""

    @staticmethod
    async def handle(event: DomainEvent) -> None:
        slack = get_slack_service()
        delivered = False

        if slack and isinstance(event, RecommendationImplemented):
            delivered = await slack.notify_recommendation_implemented(
                title=event.payload.get("title", ""),
                provider=event.payload.get("provider", ""),
                potential_savings=float(event.payload.get("potential_savings", 0)),
            )
        elif slack and isinstance(event, AccountConnected):
            delivered = await slack.notify_account_connected(
                name=event.payload.get("name", ""),
                provider=event.payload.get("provider", ""),
                external_id=event.payload.get("account_id", ""),
            )

        logger.info(
            "notification_dispatched",
            event_name=event.name,
            user_id=str(event.user_id),
            delivered=delivered,
        )

    @staticmethod
    def register(bus: EventBus) -> None:
        bus.subscribe(NotificationDispatcher.handle)
