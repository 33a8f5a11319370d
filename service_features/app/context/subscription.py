"""
Subscription liveness derived from billing records.
"""

from datetime import datetime, timezone
from typing import Optional

from ..rules.models import SubscriptionRecord, SubscriptionStatus

LIVE_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value})


def has_active_subscription(record: Optional[SubscriptionRecord], now: Optional[datetime] = None) -> bool:
    """Whether ``record`` represents a subscription the actor may use now.

    Active and trialing subscriptions are live. A cancelled subscription stays
    live until the end of the period already paid for.
    """
    if record is None:
        return False

    if record.status in LIVE_STATUSES:
        return True

    if record.cancel_at_period_end and record.current_period_end is not None:
        now = now or datetime.now(timezone.utc)
        period_end = record.current_period_end
        if period_end.tzinfo is None:
            period_end = period_end.replace(tzinfo=timezone.utc)
        return period_end > now

    return False
