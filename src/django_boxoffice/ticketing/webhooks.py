"""Stripe webhook handling for the ticketing app.

Provides a registry-based dispatch system for processing Stripe webhook events.
Each event kind (e.g. ``checkout.session.completed``) maps to a handler class
that encapsulates idempotent processing and error capture.

The ``stripe_webhook`` view verifies event signatures, deduplicates by Stripe
event ID, and delegates to the appropriate handler.

Usage in URL configuration::

    from django_boxoffice.ticketing.webhooks import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook),
    ]
"""

from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING

import stripe
from django.core.exceptions import ValidationError
from django.http import HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from django_boxoffice.settings import get_config
from django_boxoffice.ticketing.exceptions import OrderNotFound, TransientStoreError
from django_boxoffice.ticketing.models import EventProcessingException, Order, StripeEvent
from django_boxoffice.ticketing.services.notification import confirm_and_notify
from django_boxoffice.ticketing.stripe_utils import convert_amount_for_db

if TYPE_CHECKING:
    from django.http import HttpRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class WebhookRegistry:
    """Registry mapping Stripe event kinds to handler classes."""

    def __init__(self) -> None:
        self._registry: dict[str, type[Webhook]] = {}

    def register(self, kind: str, handler_class: type[Webhook]) -> None:
        """Register a handler class for a Stripe event kind.

        Args:
            kind: The Stripe event type string (e.g. ``"checkout.session.completed"``).
            handler_class: A ``Webhook`` subclass that handles this event kind.
        """
        self._registry[kind] = handler_class

    def get(self, kind: str) -> type[Webhook] | None:
        """Return the handler class for a given event kind, or ``None``."""
        return self._registry.get(kind)


registry = WebhookRegistry()


# ---------------------------------------------------------------------------
# Base handler
# ---------------------------------------------------------------------------


class Webhook:
    """Base class for Stripe webhook event handlers.

    Subclasses set ``name`` to the Stripe event kind they handle and
    implement ``process_webhook()``. The base ``process()`` method wraps
    execution in an already-processed check and exception capture.

    Attributes:
        name: The Stripe event kind this handler processes.
        event: The ``StripeEvent`` model instance being handled.
    """

    name: str = ""

    def __init__(self, event: StripeEvent) -> None:
        self.event = event

    def process(self) -> None:
        """Run the handler, then mark the event processed.

        On failure the traceback is captured to ``EventProcessingException``
        and the exception is re-raised; the event stays unprocessed so a
        redelivery runs it again.
        """
        if self.event.processed:
            logger.info("Event %s already processed, skipping", self.event.stripe_id)
            return

        try:
            self.process_webhook()
            self.event.processed = True
            self.event.save(update_fields=["processed"])
        except Exception:
            self.log_exception()
            raise

    def process_webhook(self) -> None:
        """Implement event-specific processing logic.

        Raises:
            NotImplementedError: Subclasses must override this method.
        """
        raise NotImplementedError

    def log_exception(self) -> None:
        """Capture the current exception to ``EventProcessingException``."""
        tb = traceback.format_exc()
        logger.error(
            "Error processing webhook %s (event %s): %s",
            self.name,
            self.event.stripe_id,
            tb,
        )
        EventProcessingException.objects.create(
            event=self.event,
            data=str(self.event.payload),
            message=str(tb)[:500],
            traceback=tb,
        )


def _event_data_object(event: StripeEvent) -> dict[str, object]:
    """Extract the ``data.object`` dict from a StripeEvent payload."""
    payload = event.payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict):
            obj = data.get("object")
            if isinstance(obj, dict):
                return obj
    return {}


# ---------------------------------------------------------------------------
# Concrete handlers
# ---------------------------------------------------------------------------


class CheckoutSessionCompletedWebhook(Webhook):
    """Handles ``checkout.session.completed`` events.

    Confirms the order named in the session metadata and emails the buyer.
    Sessions that are not paid yet (delayed payment methods) are left for
    ``checkout.session.async_payment_succeeded``.
    """

    name = "checkout.session.completed"

    def process_webhook(self) -> None:
        """Confirm the order once Stripe reports the session as paid."""
        session = _event_data_object(self.event)
        if session.get("payment_status") != "paid":
            logger.info(
                "Checkout session %s not paid yet (payment_status=%s)",
                session.get("id"),
                session.get("payment_status"),
            )
            return

        metadata = session.get("metadata")
        order_id = metadata.get("order_id") if isinstance(metadata, dict) else None
        if not order_id:
            logger.warning("Checkout session %s has no order_id in metadata", session.get("id"))
            return

        try:
            order = Order.objects.filter(pk=order_id).first()
        except ValidationError:
            order = None
        if order is None:
            logger.warning("Checkout session %s references unknown order %s", session.get("id"), order_id)
            return

        amount_total = session.get("amount_total")
        if amount_total is not None:
            paid_amount = convert_amount_for_db(int(amount_total), get_config().currency)
            if paid_amount != order.total:
                logger.warning(
                    "Checkout session %s paid %s but order %s totals %s",
                    session.get("id"),
                    paid_amount,
                    order.pk,
                    order.total,
                )

        payment_intent = session.get("payment_intent")
        if payment_intent:
            Order.objects.filter(pk=order.pk, payment_intent_id="").update(payment_intent_id=str(payment_intent))

        try:
            outcome = confirm_and_notify(order.pk)
        except OrderNotFound:
            logger.warning("Order %s disappeared before confirmation", order.pk)
            return

        logger.info(
            "Order %s confirmed via checkout session %s (already_paid=%s, email_sent=%s)",
            order.pk,
            session.get("id"),
            outcome.already_paid,
            outcome.email_sent,
        )


class CheckoutSessionAsyncPaymentSucceededWebhook(CheckoutSessionCompletedWebhook):
    """Handles ``checkout.session.async_payment_succeeded`` events."""

    name = "checkout.session.async_payment_succeeded"


# ---------------------------------------------------------------------------
# Handler registration
# ---------------------------------------------------------------------------

registry.register("checkout.session.completed", CheckoutSessionCompletedWebhook)
registry.register("checkout.session.async_payment_succeeded", CheckoutSessionAsyncPaymentSucceededWebhook)


# ---------------------------------------------------------------------------
# Webhook endpoint view
# ---------------------------------------------------------------------------


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """Receive and process Stripe webhook events.

    Verifies the event signature, persists the raw event, skips events that
    were already processed, and dispatches to the registered handler.

    Returns:
        400 for a bad signature, 500 when the store was temporarily
        unavailable (so Stripe redelivers), and 200 otherwise. Other
        processing errors are captured to ``EventProcessingException`` and
        acknowledged.
    """
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")

    config = get_config()
    webhook_secret = config.stripe.webhook_secret
    if not webhook_secret:
        logger.error("BOXOFFICE['stripe']['webhook_secret'] is not configured; rejecting webhook")
        return HttpResponse(status=500)

    try:
        event = stripe.Webhook.construct_event(
            payload,
            sig_header,
            webhook_secret,
            tolerance=config.stripe.webhook_tolerance,
        )
    except (stripe.SignatureVerificationError, ValueError):
        logger.warning("Invalid Stripe webhook payload or signature")
        return HttpResponse(status=400)

    event_data = event.to_dict()
    stripe_id = event_data["id"]
    kind = event_data["type"]

    stripe_event, created = StripeEvent.objects.get_or_create(
        stripe_id=stripe_id,
        defaults={
            "kind": kind,
            "livemode": bool(event_data.get("livemode", False)),
            "payload": event_data,
            "api_version": event_data.get("api_version") or "",
        },
    )
    if not created and stripe_event.processed:
        logger.info("Duplicate Stripe event %s, returning 200", stripe_id)
        return HttpResponse(status=200)

    handler_class = registry.get(kind)
    if handler_class is None:
        logger.info("No handler registered for event kind '%s'", kind)
        return HttpResponse(status=200)

    try:
        handler_class(stripe_event).process()
    except TransientStoreError:
        logger.warning("Stripe event %s deferred: store temporarily unavailable", stripe_id)
        return HttpResponse(status=500)
    except Exception:
        logger.exception(
            "Error processing Stripe event %s (kind=%s)",
            stripe_id,
            kind,
        )

    return HttpResponse(status=200)
