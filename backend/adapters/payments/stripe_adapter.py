"""
Stripe billing adapter for subscription management.

Talks to the Stripe REST API over httpx for checkout sessions, subscriptions,
products, prices and the customer portal, and verifies signed webhook
deliveries.
"""

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)

# Maximum age of a webhook signature timestamp, in seconds
DEFAULT_WEBHOOK_TOLERANCE = 300


# Custom Exceptions
class StripeError(Exception):
    """Base exception for Stripe adapter errors."""

    pass


class StripeAPIError(StripeError):
    """Raised when the Stripe API returns an error or cannot be reached."""

    pass


class StripeWebhookError(StripeError):
    """Raised when webhook signature verification or parsing fails."""

    pass


class StripeAuthError(StripeError):
    """Raised when no API key is configured."""

    pass


def _encode_params(data: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested params into Stripe's bracketed form encoding."""
    pairs: list[tuple[str, str]] = []
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(_encode_params(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    pairs.extend(_encode_params(item, item_name))
                else:
                    pairs.append((item_name, _format_scalar(item)))
        else:
            pairs.append((name, _format_scalar(value)))
    return pairs


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _object_id(value: Any) -> str | None:
    """Return the id of an expandable field, expanded or not."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


# Dataclasses
@dataclass
class StripeCheckoutSession:
    """Stripe checkout session information."""

    id: str
    url: str | None
    customer_id: str | None
    subscription_id: str | None
    client_reference_id: str | None
    status: str | None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "StripeCheckoutSession":
        return cls(
            id=data.get("id", ""),
            url=data.get("url"),
            customer_id=_object_id(data.get("customer")),
            subscription_id=_object_id(data.get("subscription")),
            client_reference_id=data.get("client_reference_id"),
            status=data.get("status"),
        )


@dataclass
class StripeSubscription:
    """Stripe subscription with its first line item's plan resolved."""

    id: str
    customer_id: str | None
    status: str
    price_id: str | None
    product_id: str | None
    product_name: str | None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "StripeSubscription":
        """
        Create subscription from an API object.

        The plan is read from ``items.data[0].price`` and falls back to the
        legacy ``plan`` field. ``product`` may be an expanded object (name
        available) or a bare id (name unknown).
        """
        items = (data.get("items") or {}).get("data") or []
        first_item = items[0] if items else {}
        price = first_item.get("price") or first_item.get("plan") or None

        product = price.get("product") if price else None
        product_name = product.get("name") if isinstance(product, dict) else None

        return cls(
            id=data.get("id", ""),
            customer_id=_object_id(data.get("customer")),
            status=data.get("status", ""),
            price_id=price.get("id") if price else None,
            product_id=_object_id(product),
            product_name=product_name,
        )

    @property
    def has_plan(self) -> bool:
        return self.price_id is not None


@dataclass
class StripePrice:
    """Recurring price shown on the pricing page."""

    id: str
    product_id: str | None
    unit_amount: int | None
    currency: str
    interval: str | None
    trial_period_days: int | None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "StripePrice":
        recurring = data.get("recurring") or {}
        return cls(
            id=data.get("id", ""),
            product_id=_object_id(data.get("product")),
            unit_amount=data.get("unit_amount"),
            currency=data.get("currency", ""),
            interval=recurring.get("interval"),
            trial_period_days=recurring.get("trial_period_days"),
        )


@dataclass
class StripeProduct:
    """Active product shown on the pricing page."""

    id: str
    name: str
    description: str | None
    default_price_id: str | None
    active: bool

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "StripeProduct":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            description=data.get("description"),
            default_price_id=_object_id(data.get("default_price")),
            active=bool(data.get("active", False)),
        )


@dataclass
class WebhookEvent:
    """Verified Stripe webhook event."""

    id: str
    type: str
    data_object: dict[str, Any]

    @classmethod
    def from_webhook_payload(cls, payload: dict[str, Any]) -> "WebhookEvent":
        data = payload.get("data") or {}
        return cls(
            id=payload.get("id", ""),
            type=payload.get("type", ""),
            data_object=data.get("object") or {},
        )


class StripeAdapter:
    """
    Stripe API adapter for subscription billing.

    Provides methods for checkout sessions, subscriptions, products, prices,
    the billing portal, and webhook verification.
    """

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        api_base: str | None = None,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Stripe adapter.

        Args:
            api_key: Stripe secret key (defaults to settings)
            webhook_secret: Webhook signing secret (defaults to settings)
            api_base: API base URL (defaults to settings)
            api_version: Pinned Stripe-Version header (defaults to settings)
            transport: Optional httpx transport, used by tests
        """
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.api_base = (api_base or settings.stripe_api_base).rstrip("/")
        self.api_version = api_version or settings.stripe_api_version
        self._transport = transport

        if not self.api_key:
            logger.warning(
                "Stripe secret key not configured. Set STRIPE_SECRET_KEY in settings."
            )

    def _get_headers(self) -> dict[str, str]:
        """Get HTTP headers for API requests."""
        if not self.api_key:
            raise StripeAuthError(
                "Stripe secret key not configured. Set STRIPE_SECRET_KEY in settings."
            )

        return {
            "Authorization": f"Bearer {self.api_key}",
            "Stripe-Version": self.api_version,
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Make HTTP request to the Stripe API.

        Args:
            method: HTTP method (GET or POST)
            endpoint: API endpoint path
            params: Query params (GET) or form body (POST), nested dicts allowed

        Returns:
            API response as dictionary

        Raises:
            StripeAPIError: If API request fails
        """
        url = f"{self.api_base}/{endpoint}"
        headers = self._get_headers()
        encoded = _encode_params(params or {})

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                logger.info("Making %s request to %s", method, endpoint)

                if method == "GET":
                    response = await client.get(url, headers=headers, params=encoded)
                elif method == "POST":
                    response = await client.post(url, headers=headers, data=dict(encoded))
                else:
                    raise ValueError(f"Unsupported HTTP method: {method}")

                response.raise_for_status()
                return response.json()

        except httpx.HTTPStatusError as e:
            error_detail = str(e)
            try:
                error_detail = e.response.json().get("error", {}).get("message", error_detail)
            except ValueError:
                pass

            logger.error("Stripe API error: %s", error_detail)
            raise StripeAPIError(f"API request failed: {error_detail}") from e
        except httpx.RequestError as e:
            logger.error("HTTP request error: %s", e)
            raise StripeAPIError(f"Request failed: {e}") from e

    async def retrieve_checkout_session(self, session_id: str) -> StripeCheckoutSession:
        """
        Get a checkout session with its customer and subscription expanded.

        Raises:
            StripeAPIError: If API request fails
        """
        logger.info("Fetching checkout session %s", session_id)
        response = await self._make_request(
            "GET",
            f"checkout/sessions/{session_id}",
            params={"expand": ["customer", "subscription"]},
        )
        return StripeCheckoutSession.from_api_response(response)

    async def retrieve_subscription(self, subscription_id: str) -> StripeSubscription:
        """
        Get a subscription with its line items' products expanded.

        Raises:
            StripeAPIError: If API request fails
        """
        logger.info("Fetching subscription %s", subscription_id)
        response = await self._make_request(
            "GET",
            f"subscriptions/{subscription_id}",
            params={"expand": ["items.data.price.product"]},
        )
        return StripeSubscription.from_api_response(response)

    async def retrieve_product(self, product_id: str) -> StripeProduct:
        logger.info("Fetching product %s", product_id)
        response = await self._make_request("GET", f"products/{product_id}")
        return StripeProduct.from_api_response(response)

    async def create_checkout_session(
        self,
        price_id: str,
        client_reference_id: str,
        success_url: str,
        cancel_url: str,
        customer_id: str | None = None,
        trial_period_days: int | None = None,
    ) -> StripeCheckoutSession:
        """
        Create a subscription-mode checkout session for a single price.

        Args:
            price_id: Stripe price to subscribe to
            client_reference_id: Our user id, echoed back on completion
            success_url: Return URL; may contain {CHECKOUT_SESSION_ID}
            cancel_url: URL the customer returns to on cancel
            customer_id: Existing Stripe customer for the team, if any
            trial_period_days: Free trial length

        Returns:
            StripeCheckoutSession with the hosted checkout URL
        """
        params: dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": "subscription",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer": customer_id,
            "client_reference_id": client_reference_id,
            "allow_promotion_codes": True,
        }
        if trial_period_days:
            params["subscription_data"] = {"trial_period_days": trial_period_days}

        logger.info("Creating checkout session for price %s", price_id)
        response = await self._make_request("POST", "checkout/sessions", params=params)
        return StripeCheckoutSession.from_api_response(response)

    async def list_portal_configurations(self) -> list[dict[str, Any]]:
        response = await self._make_request("GET", "billing_portal/configurations")
        return response.get("data", [])

    async def create_portal_configuration(
        self,
        product_id: str,
        price_ids: list[str],
    ) -> dict[str, Any]:
        """Create a portal configuration allowing plan changes and cancellation."""
        params = {
            "business_profile": {"headline": "Manage your subscription"},
            "features": {
                "subscription_update": {
                    "enabled": True,
                    "default_allowed_updates": ["price", "quantity", "promotion_code"],
                    "proration_behavior": "create_prorations",
                    "products": [{"product": product_id, "prices": price_ids}],
                },
                "subscription_cancel": {
                    "enabled": True,
                    "mode": "at_period_end",
                    "cancellation_reason": {
                        "enabled": True,
                        "options": [
                            "too_expensive",
                            "missing_features",
                            "switched_service",
                            "unused",
                            "other",
                        ],
                    },
                },
            },
        }
        logger.info("Creating billing portal configuration for product %s", product_id)
        return await self._make_request("POST", "billing_portal/configurations", params=params)

    async def create_portal_session(
        self,
        customer_id: str,
        return_url: str,
        configuration_id: str,
    ) -> str:
        """Create a customer portal session and return its URL."""
        response = await self._make_request(
            "POST",
            "billing_portal/sessions",
            params={
                "customer": customer_id,
                "return_url": return_url,
                "configuration": configuration_id,
            },
        )
        return response["url"]

    async def list_prices(
        self,
        product_id: str | None = None,
        recurring_only: bool = False,
    ) -> list[StripePrice]:
        """List active prices, optionally for one product or recurring only."""
        params: dict[str, Any] = {"active": True, "expand": ["data.product"]}
        if product_id:
            params["product"] = product_id
        if recurring_only:
            params["type"] = "recurring"
        response = await self._make_request("GET", "prices", params=params)
        return [StripePrice.from_api_response(item) for item in response.get("data", [])]

    async def list_products(self) -> list[StripeProduct]:
        """List active products with their default price."""
        response = await self._make_request(
            "GET",
            "products",
            params={"active": True, "expand": ["data.default_price"]},
        )
        return [StripeProduct.from_api_response(item) for item in response.get("data", [])]

    async def create_product(self, name: str, description: str) -> StripeProduct:
        response = await self._make_request(
            "POST", "products", params={"name": name, "description": description}
        )
        return StripeProduct.from_api_response(response)

    async def create_price(
        self,
        product_id: str,
        unit_amount: int,
        currency: str = "usd",
        interval: str = "month",
        trial_period_days: int | None = None,
    ) -> StripePrice:
        response = await self._make_request(
            "POST",
            "prices",
            params={
                "product": product_id,
                "unit_amount": unit_amount,
                "currency": currency,
                "recurring": {
                    "interval": interval,
                    "trial_period_days": trial_period_days,
                },
            },
        )
        return StripePrice.from_api_response(response)

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature_header: str,
        tolerance: int = DEFAULT_WEBHOOK_TOLERANCE,
        now: float | None = None,
    ) -> bool:
        """
        Verify a Stripe-Signature header.

        The header has the form ``t=<unix>,v1=<hex>[,v1=<hex>...]``; each v1 is
        HMAC-SHA256 of ``"<t>.<payload>"`` under the webhook secret.

        Args:
            payload: Raw request body
            signature_header: Value of the Stripe-Signature header
            tolerance: Maximum signature age in seconds
            now: Override the current unix time

        Returns:
            True if a v1 signature matches and the timestamp is fresh

        Raises:
            StripeWebhookError: If webhook secret not configured
        """
        if not self.webhook_secret:
            raise StripeWebhookError(
                "Webhook secret not configured. Set STRIPE_WEBHOOK_SECRET in settings."
            )

        timestamp = None
        signatures = []
        for part in (signature_header or "").split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                signatures.append(value)

        if not timestamp or not signatures:
            logger.warning("Webhook signature header is malformed")
            return False

        try:
            timestamp_value = int(timestamp)
        except ValueError:
            logger.warning("Webhook signature timestamp is not an integer")
            return False

        current = time.time() if now is None else now
        if tolerance and abs(current - timestamp_value) > tolerance:
            logger.warning("Webhook signature timestamp outside tolerance")
            return False

        signed_payload = f"{timestamp}.".encode("utf-8") + payload
        expected_signature = hmac.new(
            key=self.webhook_secret.encode("utf-8"),
            msg=signed_payload,
            digestmod=hashlib.sha256,
        ).hexdigest().encode("ascii")

        # Headers may carry arbitrary text; compare_digest only accepts ASCII str
        is_valid = any(
            hmac.compare_digest(expected_signature, sig.encode("utf-8", "replace"))
            for sig in signatures
        )
        if is_valid:
            logger.info("Webhook signature verified successfully")
        else:
            logger.warning("Webhook signature verification failed")
        return is_valid

    def construct_event(
        self,
        payload: bytes,
        signature_header: str,
        tolerance: int = DEFAULT_WEBHOOK_TOLERANCE,
    ) -> WebhookEvent:
        """
        Verify and parse a webhook delivery.

        Raises:
            StripeWebhookError: If the signature is invalid or the body is not an event
        """
        if not self.verify_webhook_signature(payload, signature_header, tolerance):
            raise StripeWebhookError("No signatures found matching the expected signature")

        try:
            body = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StripeWebhookError(f"Invalid webhook payload: {e}") from e

        if not isinstance(body, dict) or not body.get("type"):
            raise StripeWebhookError("Webhook payload is not an event")

        event = WebhookEvent.from_webhook_payload(body)
        logger.info("Parsed webhook event: %s", event.type)
        return event


# Factory function for easy instantiation
def create_stripe_adapter(
    api_key: str | None = None,
    webhook_secret: str | None = None,
) -> StripeAdapter:
    """
    Create a Stripe adapter instance.

    Args:
        api_key: Stripe secret key (defaults to settings)
        webhook_secret: Webhook signing secret (defaults to settings)

    Returns:
        StripeAdapter instance
    """
    return StripeAdapter(api_key=api_key, webhook_secret=webhook_secret)
