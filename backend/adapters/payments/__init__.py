"""Payment adapters for billing and subscription management."""

from .stripe_adapter import (
    StripeAdapter,
    StripeAPIError,
    StripeAuthError,
    StripeCheckoutSession,
    StripeError,
    StripePrice,
    StripeProduct,
    StripeSubscription,
    StripeWebhookError,
    WebhookEvent,
    create_stripe_adapter,
)

__all__ = [
    "StripeAdapter",
    "StripeCheckoutSession",
    "StripeSubscription",
    "StripePrice",
    "StripeProduct",
    "WebhookEvent",
    "StripeError",
    "StripeAPIError",
    "StripeWebhookError",
    "StripeAuthError",
    "create_stripe_adapter",
]
