"""Subscription lifecycle: protocol service, file store and renewal scheduler."""

from operator_plane.subscriptions.models import (
    AuthUserRef,
    DesiredSubscription,
    SubscriptionEnsureRequest,
    SubscriptionState,
)
from operator_plane.subscriptions.scheduler import RenewalReport, SubscriptionScheduler
from operator_plane.subscriptions.service import SubscriptionService
from operator_plane.subscriptions.store import SubscriptionStore

__all__ = [
    "AuthUserRef",
    "DesiredSubscription",
    "RenewalReport",
    "SubscriptionEnsureRequest",
    "SubscriptionScheduler",
    "SubscriptionService",
    "SubscriptionState",
    "SubscriptionStore",
]
