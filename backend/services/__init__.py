"""
Service layer for business logic.
"""

from .activity_log import ActivityLogWriter, get_activity_logs
from .subscriptions import (
    CheckoutReconciliationError,
    handle_checkout_completed,
    handle_subscription_change,
)

__all__ = [
    "ActivityLogWriter",
    "get_activity_logs",
    "CheckoutReconciliationError",
    "handle_checkout_completed",
    "handle_subscription_change",
]
