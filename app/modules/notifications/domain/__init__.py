from .slack import SlackService, get_slack_service
from .events import EventBus, event_bus, get_event_bus, RecommendationImplemented, AccountConnected
from .alerts import AlertService

__all__ = [
    "SlackService",
    "get_slack_service",
    "EventBus",
    "event_bus",
    "get_event_bus",
    "RecommendationImplemented",
    "AccountConnected",
    "AlertService",
]
