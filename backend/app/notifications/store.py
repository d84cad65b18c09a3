"""Push subscription persistence.

Subscriptions are keyed by their push-service endpoint: saving an endpoint
that already exists refreshes it in place and keeps its id and created_at.
"""

import logging
import time
import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.push_subscription import PushSubscription
from app.notifications.schemas import SubscriptionCreate

logger = logging.getLogger(__name__)


def _new_subscription_id() -> str:
    return f"sub_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"


async def get_by_endpoint(db: AsyncSession, endpoint: str) -> PushSubscription | None:
    result = await db.execute(select(PushSubscription).where(PushSubscription.endpoint == endpoint))
    return result.scalar_one_or_none()


async def list_subscriptions(db: AsyncSession) -> list[PushSubscription]:
    result = await db.execute(select(PushSubscription).order_by(PushSubscription.created_at))
    return list(result.scalars())


async def save_subscription(
    db: AsyncSession,
    subscription: SubscriptionCreate,
    user_agent: str | None = None,
) -> PushSubscription:
    now = datetime.now(UTC)
    row = await get_by_endpoint(db, subscription.endpoint)
    if row is None:
        row = PushSubscription(
            id=_new_subscription_id(),
            endpoint=subscription.endpoint,
            created_at=now,
        )
        db.add(row)

    row.expiration_time = subscription.expiration_time
    row.p256dh = subscription.keys.p256dh
    row.auth = subscription.keys.auth
    row.user_agent = user_agent
    row.updated_at = now

    await db.commit()
    await db.refresh(row)
    return row


async def remove_subscription(db: AsyncSession, endpoint: str) -> bool:
    row = await get_by_endpoint(db, endpoint)
    if row is None:
        return False
    await db.delete(row)
    await db.commit()
    return True


async def cleanup_expired(db: AsyncSession, now_ms: int | None = None) -> int:
    """Delete subscriptions whose expiration time has passed.  Returns how many went."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    result = await db.execute(
        delete(PushSubscription).where(
            PushSubscription.expiration_time.is_not(None),
            PushSubscription.expiration_time < now_ms,
        )
    )
    await db.commit()
    removed = result.rowcount or 0
    if removed:
        logger.info("Removed %d expired push subscriptions", removed)
    return removed
