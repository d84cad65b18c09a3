from app.models.push_subscription import PushSubscription

__all__ = [
    "PushSubscription",
]
