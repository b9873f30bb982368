"""Stripe client wrapper for Checkout Session operations.

Uses the modern ``stripe.StripeClient`` pattern (v1 namespace) bound to the
secret key and API version from ``BOXOFFICE["stripe"]``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import stripe

from django_boxoffice.settings import get_config
from django_boxoffice.ticketing.stripe_utils import convert_amount_for_api, obfuscate_key

if TYPE_CHECKING:
    from django_boxoffice.ticketing.models import Order

logger = logging.getLogger(__name__)


def success_url(order: Order) -> str:
    """Return the storefront page the buyer lands on after paying."""
    return f"{get_config().site_url.rstrip('/')}/success?orderId={order.pk}"


def cancel_url() -> str:
    return f"{get_config().site_url.rstrip('/')}/"


class StripeClient:
    """Thin wrapper around ``stripe.StripeClient``.

    Raises:
        ValueError: If no Stripe secret key is configured.
    """

    def __init__(self) -> None:
        """Initialize the client from ``BOXOFFICE["stripe"]``.

        Raises:
            ValueError: If ``BOXOFFICE["stripe"]["secret_key"]`` is not set.
        """
        config = get_config()
        secret_key = config.stripe.secret_key
        if not secret_key:
            msg = "BOXOFFICE['stripe']['secret_key'] is not configured."
            raise ValueError(msg)

        self.currency = config.currency
        self.client = stripe.StripeClient(
            secret_key,
            stripe_version=config.stripe.api_version,
        )
        logger.debug("Initialized StripeClient with key %s", obfuscate_key(secret_key))

    def create_checkout_session(self, order: Order) -> stripe.checkout.Session:
        """Create a hosted Checkout Session for a pending order.

        Each line item is priced from the order's price snapshot, not the
        live catalog. The order id travels in the session metadata so the
        webhook can find the order again, and doubles as the idempotency key
        so a retried request does not open a second session.

        Args:
            order: The pending order to collect payment for.

        Returns:
            The created ``stripe.checkout.Session``.
        """
        line_items = [
            {
                "price_data": {
                    "currency": self.currency.lower(),
                    "product_data": {"name": item.category.name},
                    "unit_amount": convert_amount_for_api(item.unit_price, self.currency),
                },
                "quantity": item.quantity,
            }
            for item in order.line_items.select_related("category")
        ]

        return self.client.v1.checkout.sessions.create(
            params={
                "mode": "payment",
                "line_items": line_items,
                "customer_email": order.customer_email,
                "success_url": success_url(order),
                "cancel_url": cancel_url(),
                "metadata": {"order_id": str(order.pk)},
            },
            options={
                "idempotency_key": f"checkout-{order.pk}",
            },
        )

    def is_session_paid(self, session_id: str) -> bool:
        """Return ``True`` when the Checkout Session has been paid."""
        session = self.client.v1.checkout.sessions.retrieve(session_id)
        return session.payment_status == "paid"
