"""
Checkout and customer portal flows on top of the Stripe adapter.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from adapters.payments.stripe_adapter import StripeAdapter, StripeError
from infrastructure.config.settings import settings
from infrastructure.database.models import Team, User

logger = logging.getLogger(__name__)


class BillingError(StripeError):
    """Raised when a team's Stripe product cannot back a portal configuration."""

    pass


def checkout_success_url() -> str:
    return f"{settings.base_url}/api/v1/stripe/checkout?session_id={{CHECKOUT_SESSION_ID}}"


def sign_up_for_checkout_url(price_id: str) -> str:
    return "/sign-up?" + urlencode({"redirect": "checkout", "priceId": price_id})


async def start_checkout(
    stripe: StripeAdapter,
    team: Optional[Team],
    user: Optional[User],
    price_id: str,
) -> str:
    """
    Create a checkout session for the team and return where to send the browser.

    Without a user or team the browser goes to sign-up, which resumes the
    checkout afterwards.

    Raises:
        StripeAPIError: If Stripe rejects the session
    """
    if team is None or user is None:
        return sign_up_for_checkout_url(price_id)

    session = await stripe.create_checkout_session(
        price_id=price_id,
        client_reference_id=str(user.id),
        success_url=checkout_success_url(),
        cancel_url=f"{settings.base_url}/pricing",
        customer_id=team.stripe_customer_id,
        trial_period_days=settings.stripe_trial_period_days,
    )
    if not session.url:
        raise StripeError("Checkout session has no URL")

    logger.info(
        "Started checkout %s for team %s",
        session.id,
        team.id,
        extra={"user_id": user.id, "team_id": team.id},
    )
    return session.url


async def open_customer_portal(stripe: StripeAdapter, team: Team) -> Optional[str]:
    """
    Create a customer portal session for the team.

    Uses the first existing portal configuration, creating one from the
    team's product and its active prices when there is none.

    Returns:
        Portal URL, or None when the team has no subscription to manage

    Raises:
        BillingError: If the team's product is inactive or has no active prices
        StripeAPIError: If a Stripe call fails
    """
    if not team.stripe_customer_id or not team.stripe_product_id:
        return None

    configurations = await stripe.list_portal_configurations()
    if configurations:
        configuration_id = configurations[0]["id"]
    else:
        product = await stripe.retrieve_product(team.stripe_product_id)
        if not product.active:
            raise BillingError("Team's product is not active in Stripe")

        prices = await stripe.list_prices(product_id=product.id)
        if not prices:
            raise BillingError("No active prices found for the team's product")

        configuration = await stripe.create_portal_configuration(
            product.id, [price.id for price in prices]
        )
        configuration_id = configuration["id"]

    return await stripe.create_portal_session(
        customer_id=team.stripe_customer_id,
        return_url=f"{settings.base_url}/dashboard",
        configuration_id=configuration_id,
    )
