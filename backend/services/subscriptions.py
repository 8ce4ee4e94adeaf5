"""
Subscription reconciler.

Brings a team's subscription columns in line with Stripe, either after a
completed checkout or on a subscription webhook. Every write is a full
overwrite of the subscription columns, so replaying the same event leaves
the row unchanged.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments.stripe_adapter import (
    StripeAdapter,
    StripeError,
    StripeSubscription,
)
from infrastructure.database.models import SubscriptionStatus, User
from services.teams import (
    get_team_by_stripe_customer_id,
    get_user_with_team,
    update_team_subscription,
)

logger = logging.getLogger(__name__)

LIVE_STATUSES = {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value}
ENDED_STATUSES = {SubscriptionStatus.CANCELED.value, SubscriptionStatus.UNPAID.value}


class CheckoutReconciliationError(Exception):
    """Raised when a completed checkout cannot be attached to a team."""

    pass


async def handle_checkout_completed(
    db: AsyncSession,
    stripe: StripeAdapter,
    session_id: str,
) -> User:
    """
    Record the subscription bought in a completed checkout on the buyer's team.

    Args:
        db: Database session
        stripe: Stripe adapter
        session_id: Checkout session id from the success redirect

    Returns:
        The purchasing user, so the caller can sign them in

    Raises:
        CheckoutReconciliationError: If any piece needed to link the purchase is missing
        StripeAPIError: If Stripe cannot be reached
    """
    checkout = await stripe.retrieve_checkout_session(session_id)

    if not checkout.customer_id:
        raise CheckoutReconciliationError("Invalid customer data from Stripe.")
    if not checkout.subscription_id:
        raise CheckoutReconciliationError("No subscription found for this session.")

    subscription = await stripe.retrieve_subscription(checkout.subscription_id)
    if not subscription.has_plan:
        raise CheckoutReconciliationError("No plan found for this subscription.")
    if not subscription.product_id:
        raise CheckoutReconciliationError("No product ID found for this subscription.")

    if not checkout.client_reference_id:
        raise CheckoutReconciliationError(
            "No user ID found in session's client_reference_id."
        )
    try:
        user_id = int(checkout.client_reference_id)
    except ValueError:
        raise CheckoutReconciliationError(
            f"Malformed client_reference_id: {checkout.client_reference_id}"
        )

    user_with_team = await get_user_with_team(db, user_id)
    if user_with_team is None:
        raise CheckoutReconciliationError("User not found in database.")
    if user_with_team.team_id is None:
        raise CheckoutReconciliationError("User is not associated with any team.")

    await update_team_subscription(
        db,
        user_with_team.team_id,
        {
            "stripe_customer_id": checkout.customer_id,
            "stripe_subscription_id": subscription.id,
            "stripe_product_id": subscription.product_id,
            "plan_name": subscription.product_name,
            "subscription_status": subscription.status,
        },
    )
    logger.info(
        "Checkout %s completed for user %s",
        session_id,
        user_id,
        extra={"user_id": user_id, "team_id": user_with_team.team_id},
    )
    return user_with_team.user


async def _resolve_plan_name(
    subscription: StripeSubscription,
    stripe: Optional[StripeAdapter],
) -> Optional[str]:
    # Webhook payloads carry the product as a bare id
    if subscription.product_name or not subscription.product_id or stripe is None:
        return subscription.product_name
    try:
        product = await stripe.retrieve_product(subscription.product_id)
    except StripeError as e:
        logger.warning(
            "Could not resolve plan name for product %s: %s",
            subscription.product_id,
            e,
        )
        return None
    return product.name


async def handle_subscription_change(
    db: AsyncSession,
    subscription: StripeSubscription,
    stripe: Optional[StripeAdapter] = None,
) -> None:
    """
    Apply a subscription updated/deleted event to the owning team.

    Unknown customers and statuses other than active, trialing, canceled and
    unpaid are logged and ignored.

    Args:
        db: Database session
        subscription: Subscription object from the webhook
        stripe: Optional adapter used to look up the plan name
    """
    if not subscription.customer_id:
        logger.error("Subscription %s has no customer", subscription.id)
        return

    team = await get_team_by_stripe_customer_id(db, subscription.customer_id)
    if team is None:
        logger.error("Team not found for Stripe customer: %s", subscription.customer_id)
        return

    status = subscription.status
    if status in LIVE_STATUSES:
        values = {
            "stripe_subscription_id": subscription.id,
            "stripe_product_id": subscription.product_id,
            "subscription_status": status,
        }
        # An unresolved name keeps the stored one so replays stay idempotent
        plan_name = await _resolve_plan_name(subscription, stripe)
        if plan_name is not None:
            values["plan_name"] = plan_name
        await update_team_subscription(db, team.id, values)
    elif status in ENDED_STATUSES:
        await update_team_subscription(
            db,
            team.id,
            {
                "stripe_subscription_id": None,
                "stripe_product_id": None,
                "plan_name": None,
                "subscription_status": status,
            },
        )
    else:
        logger.info(
            "Ignoring subscription %s with status %s",
            subscription.id,
            status,
            extra={"team_id": team.id},
        )
