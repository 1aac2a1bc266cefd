"""
Subscription read side.

`get_active_subscription` answers "is this user entitled right now" from
the subscription rows themselves and never touches users.is_subscribed.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, and_

from mzone.core.database import get_db_session, subscriptions
from mzone.models.subscription import Subscription, as_utc, utc_now

ACTIVE = "active"


def row_to_subscription(row) -> Subscription:
    return Subscription(
        id=row.id,
        user_id=row.user_id,
        plan=row.plan,
        amount_paid_minor_units=row.amount,
        reference=row.reference,
        discount_code=row.discount_code,
        status=row.status,
        start_date=as_utc(row.start_date),
        end_date=as_utc(row.end_date),
        created_at=as_utc(row.created_at),
    )


def find_by_reference(reference: str) -> Optional[Subscription]:
    with get_db_session() as session:
        row = session.execute(
            select(subscriptions).where(subscriptions.c.reference == reference)
        ).first()
        return row_to_subscription(row) if row else None


def list_for_user(user_id: str) -> List[Subscription]:
    """All subscriptions for a user, newest first."""
    with get_db_session() as session:
        rows = session.execute(
            select(subscriptions)
            .where(subscriptions.c.user_id == user_id)
            .order_by(subscriptions.c.created_at.desc())
        ).fetchall()
        return [row_to_subscription(r) for r in rows]


def get_active_subscription(user_id: str, now: Optional[datetime] = None) -> Optional[Subscription]:
    """
    Most recently created active subscription that has not ended.

    Args:
        user_id: owner
        now: evaluation time (defaults to current UTC time)

    Returns:
        Subscription, or None if the user has no current entitlement
    """
    at = as_utc(now) if now else utc_now()
    with get_db_session() as session:
        row = session.execute(
            select(subscriptions)
            .where(
                and_(
                    subscriptions.c.user_id == user_id,
                    subscriptions.c.status == ACTIVE,
                    subscriptions.c.end_date >= at,
                )
            )
            .order_by(subscriptions.c.created_at.desc())
            .limit(1)
        ).first()
        return row_to_subscription(row) if row else None
