from app.notifications.schemas import NotificationPayload, SubscriptionCreate
from app.notifications.store import (
    cleanup_expired,
    list_subscriptions,
    remove_subscription,
    save_subscription,
)

__all__ = [
    "NotificationPayload",
    "SubscriptionCreate",
    "save_subscription",
    "remove_subscription",
    "list_subscriptions",
    "cleanup_expired",
]
