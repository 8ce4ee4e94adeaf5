"""
Billing API routes for Stripe checkout, the customer portal and webhooks.
"""

import logging
from typing import Annotated, Any, Mapping

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments.stripe_adapter import (
    StripeAdapter,
    StripeError,
    StripeSubscription,
    StripeWebhookError,
)
from api.actions import (
    ActionContext,
    ActionResult,
    get_action_context,
    redirect,
    with_team,
)
from api.dependencies import get_stripe_adapter, get_token_service
from api.middleware.rate_limit import get_rate_limit, limiter
from api.schemas.billing import PriceResponse, ProductResponse, WebhookResponse
from api.session import set_session
from core.security.tokens import SessionTokenService
from infrastructure.database.connection import get_db
from infrastructure.database.models import Team
from services.billing import open_customer_portal, start_checkout
from services.subscriptions import (
    CheckoutReconciliationError,
    handle_checkout_completed,
    handle_subscription_change,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Billing"])

SUBSCRIPTION_EVENTS = {
    "customer.subscription.updated",
    "customer.subscription.deleted",
}


@with_team
async def checkout_action(form: Mapping[str, Any], team: Team, ctx: ActionContext) -> ActionResult:
    url = await start_checkout(ctx.stripe, team, ctx.user, form.get("priceId") or "")
    return redirect(url)


@with_team
async def customer_portal_action(form: Mapping[str, Any], team: Team, ctx: ActionContext) -> ActionResult:
    url = await open_customer_portal(ctx.stripe, team)
    if url is None:
        return redirect("/pricing")
    return redirect(url)


@router.post("/billing/checkout")
async def create_checkout(
    request: Request,
    ctx: Annotated[ActionContext, Depends(get_action_context)],
):
    """Start a Stripe checkout for the submitted priceId."""
    form = await request.form()
    return ctx.render(await checkout_action(form, ctx))


@router.post("/billing/portal")
async def create_portal(
    request: Request,
    ctx: Annotated[ActionContext, Depends(get_action_context)],
):
    """Send the team owner to the Stripe customer portal."""
    form = await request.form()
    return ctx.render(await customer_portal_action(form, ctx))


@router.get("/billing/prices", response_model=list[PriceResponse])
async def get_prices(stripe: Annotated[StripeAdapter, Depends(get_stripe_adapter)]):
    """List active recurring prices."""
    try:
        return await stripe.list_prices(recurring_only=True)
    except StripeError as e:
        logger.error("Failed to list prices: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to load prices",
        )


@router.get("/billing/products", response_model=list[ProductResponse])
async def get_products(stripe: Annotated[StripeAdapter, Depends(get_stripe_adapter)]):
    """List active products."""
    try:
        return await stripe.list_products()
    except StripeError as e:
        logger.error("Failed to list products: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to load products",
        )


@router.get("/stripe/checkout")
async def checkout_callback(
    db: Annotated[AsyncSession, Depends(get_db)],
    stripe: Annotated[StripeAdapter, Depends(get_stripe_adapter)],
    tokens: Annotated[SessionTokenService, Depends(get_token_service)],
    session_id: str | None = None,
):
    """
    Stripe checkout success redirect.

    Records the purchased subscription on the buyer's team and signs the
    buyer in.
    """
    if not session_id:
        return redirect("/pricing")

    try:
        user = await handle_checkout_completed(db, stripe, session_id)
    except (CheckoutReconciliationError, StripeError) as e:
        logger.error("Error handling successful checkout: %s", e)
        return redirect("/error")

    response = redirect("/dashboard")
    set_session(response, tokens, user.id)
    return response


@router.post("/stripe/webhook", response_model=WebhookResponse)
@limiter.limit(get_rate_limit("webhook"))
async def stripe_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    stripe: Annotated[StripeAdapter, Depends(get_stripe_adapter)],
):
    """
    Handle Stripe webhook deliveries.

    Subscription updates and deletions are reconciled onto the owning team;
    other event types are acknowledged and ignored.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")

    try:
        event = stripe.construct_event(payload, signature)
    except StripeWebhookError as e:
        logger.warning("Webhook signature verification failed: %s", e)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Webhook signature verification failed."},
        )

    if event.type in SUBSCRIPTION_EVENTS:
        subscription = StripeSubscription.from_api_response(event.data_object)
        await handle_subscription_change(db, subscription, stripe)
    else:
        logger.info("Unhandled event type %s", event.type)

    return {"received": True}
