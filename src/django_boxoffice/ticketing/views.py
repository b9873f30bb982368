"""JSON endpoints for the storefront, the door scanner, and staff.

Storefront views are public. The scanner and staff views require an
operator (see :mod:`django_boxoffice.ticketing.auth`). Each group can be
switched off with ``BOXOFFICE["features"]``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import stripe
from django.core.exceptions import ValidationError
from django.forms import Form
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from django_boxoffice.features import FeatureRequiredMixin
from django_boxoffice.ticketing.auth import OperatorRequiredMixin
from django_boxoffice.ticketing.exceptions import (
    CapacityExceeded,
    NotFound,
    NotificationFailure,
    OrderNotFound,
    TransientStoreError,
)
from django_boxoffice.ticketing.forms import CartLineForm, CategoryUpdateForm, CustomerForm, RedeemForm
from django_boxoffice.ticketing.models import Order
from django_boxoffice.ticketing.services.catalog import CatalogService
from django_boxoffice.ticketing.services.intake import CartLine, CustomerDetails, OrderIntakeService
from django_boxoffice.ticketing.services.notification import confirm_and_notify, resend_confirmation, ticket_link
from django_boxoffice.ticketing.services.redemption import RedemptionService
from django_boxoffice.ticketing.services.reporting import ReportingService
from django_boxoffice.ticketing.stripe_client import StripeClient

if TYPE_CHECKING:
    from uuid import UUID

    from django.http import HttpRequest

logger = logging.getLogger(__name__)

CONFIRMATION_FAILED_MESSAGE = (
    "We could not finish confirming your order automatically. Please check your email or contact support."
)


def _error(message: str, status: int) -> JsonResponse:
    return JsonResponse({"error": message}, status=status)


def _validation_message(exc: ValidationError) -> str:
    return " ".join(exc.messages)


def _form_message(form: Form) -> str:
    errors = form.errors.get_json_data()
    return "; ".join(
        f"{field}: {error['message']}" if field != "__all__" else error["message"]
        for field, field_errors in errors.items()
        for error in field_errors
    )


def _json_body(request: HttpRequest) -> dict:
    """Return the request's JSON object body.

    Raises:
        ValidationError: If the body is not a JSON object.
    """
    try:
        body = json.loads(request.body or b"{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError("Request body must be valid JSON.") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    return body


# ---------------------------------------------------------------------------
# Storefront
# ---------------------------------------------------------------------------


class CategoryListView(FeatureRequiredMixin, View):
    """List ticket categories on sale, cheapest first."""

    required_feature = "storefront"

    def get(self, request: HttpRequest) -> JsonResponse:  # noqa: ARG002
        categories = [snapshot.as_dict() for snapshot in CatalogService.list_categories()]
        return JsonResponse(categories, safe=False)


@method_decorator(csrf_exempt, name="dispatch")
class OrderCreateView(FeatureRequiredMixin, View):
    """Create a pending order and hand the buyer over to payment.

    Expects ``{"customer": {"firstName", "lastName", "email", "phone"},
    "items": [{"categoryId", "quantity"}]}``. Prices sent by the client are
    ignored.
    """

    required_feature = "storefront"

    def post(self, request: HttpRequest) -> JsonResponse:
        try:
            body = _json_body(request)
        except ValidationError as exc:
            return _error(_validation_message(exc), 400)

        raw_customer = body.get("customer") or {}
        if not isinstance(raw_customer, dict):
            return _error("customer must be an object.", 400)
        customer_form = CustomerForm(
            data={
                "first_name": raw_customer.get("firstName", ""),
                "last_name": raw_customer.get("lastName", ""),
                "email": raw_customer.get("email", ""),
                "phone": raw_customer.get("phone", ""),
            }
        )
        if not customer_form.is_valid():
            return _error(_form_message(customer_form), 400)

        raw_items = body.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            return _error("Cart is empty.", 400)
        lines: list[CartLine] = []
        for raw_item in raw_items:
            if not isinstance(raw_item, dict):
                return _error("Each item must be an object.", 400)
            line_form = CartLineForm(
                data={"category_id": raw_item.get("categoryId"), "quantity": raw_item.get("quantity")},
            )
            if not line_form.is_valid():
                return _error(_form_message(line_form), 400)
            lines.append(CartLine(line_form.cleaned_data["category_id"], line_form.cleaned_data["quantity"]))

        customer = CustomerDetails(
            name=customer_form.full_name,
            email=customer_form.cleaned_data["email"],
            phone=customer_form.cleaned_data["phone"],
        )
        try:
            placed = OrderIntakeService.place_order(customer, lines)
        except ValidationError as exc:
            return _error(_validation_message(exc), 400)
        except NotFound as exc:
            return _error(str(exc), 404)
        except stripe.StripeError:
            logger.exception("Could not open a checkout session")
            return _error("Payment provider is unavailable, please try again.", 502)

        return JsonResponse(
            {"orderId": str(placed.order.pk), "paymentRedirectUrl": placed.payment_redirect_url},
            status=201,
        )


class OrderDetailView(FeatureRequiredMixin, View):
    """Return an order and its tickets. The unguessable order id acts as the access key."""

    required_feature = "storefront"

    def get(self, request: HttpRequest, order_id: UUID) -> JsonResponse:  # noqa: ARG002
        order = Order.objects.filter(pk=order_id).first()
        if order is None:
            return _error("Order not found.", 404)

        tickets = order.tickets.select_related("category").order_by("category_id", "sequence_number")
        return JsonResponse(
            {
                "id": str(order.pk),
                "shortId": order.short_id,
                "customerName": order.customer_name,
                "customerEmail": order.customer_email,
                "total": order.total,
                "status": order.status,
                "createdAt": order.created_at,
                "paidAt": order.paid_at,
                "ticketLink": ticket_link(order),
                "items": [
                    {
                        "categoryName": item.category.name,
                        "quantity": item.quantity,
                        "unitPrice": item.unit_price,
                    }
                    for item in order.line_items.select_related("category")
                ],
                "tickets": [
                    {
                        "displayLabel": ticket.display_label,
                        "categoryName": ticket.category.name,
                        "redemptionCode": ticket.redemption_code,
                        "status": ticket.status,
                    }
                    for ticket in tickets
                ],
            }
        )


@method_decorator(csrf_exempt, name="dispatch")
class OrderConfirmView(FeatureRequiredMixin, View):
    """Confirm an order after the buyer returns from payment.

    Expects ``{"orderId": ...}``. A pending order with a non-zero total is
    only confirmed once its checkout session is reported paid. Calling this
    again for a paid order is a harmless no-op.
    """

    required_feature = "storefront"

    def post(self, request: HttpRequest) -> JsonResponse:
        try:
            body = _json_body(request)
        except ValidationError as exc:
            return _error(_validation_message(exc), 400)

        order_id = body.get("orderId")
        if not order_id:
            return _error("orderId is required.", 400)
        try:
            order = Order.objects.filter(pk=order_id).first()
        except ValidationError:
            order = None
        if order is None:
            return _error("Order not found.", 404)

        if not order.is_paid and order.total > 0:
            if not order.stripe_session_id:
                return _error("Payment has not been completed for this order.", 402)
            try:
                paid = StripeClient().is_session_paid(order.stripe_session_id)
            except stripe.StripeError:
                logger.exception("Could not verify checkout session for order %s", order.pk)
                return _error(CONFIRMATION_FAILED_MESSAGE, 502)
            if not paid:
                return _error("Payment has not been completed for this order.", 402)

        try:
            outcome = confirm_and_notify(order.pk)
        except OrderNotFound:
            return _error("Order not found.", 404)
        except CapacityExceeded:
            logger.exception("Order %s paid but could not be issued", order.pk)
            return _error(CONFIRMATION_FAILED_MESSAGE, 409)
        except TransientStoreError:
            return _error(CONFIRMATION_FAILED_MESSAGE, 503)

        response: dict[str, object] = {
            "success": outcome.success,
            "alreadyPaid": outcome.already_paid,
            "ticketsIssued": outcome.tickets_issued,
            "emailSent": outcome.email_sent,
        }
        if outcome.warning:
            response["warning"] = outcome.warning
        return JsonResponse(response)


# ---------------------------------------------------------------------------
# Door scanner
# ---------------------------------------------------------------------------


@method_decorator(csrf_exempt, name="dispatch")
class RedeemView(FeatureRequiredMixin, OperatorRequiredMixin, View):
    """Check a ticket in at the door.

    Every scan outcome is a 200 response: ``valid`` tells admit from reject
    and ``reason`` tells ``already_used`` from ``unknown_code``.
    """

    required_feature = "scanner"

    def post(self, request: HttpRequest) -> JsonResponse:
        try:
            body = _json_body(request)
        except ValidationError as exc:
            return _error(_validation_message(exc), 400)

        form = RedeemForm(data={"code": body.get("code") or body.get("qrCode") or ""})
        if not form.is_valid():
            return _error(_form_message(form), 400)

        try:
            result = RedemptionService.redeem(form.cleaned_data["code"])
        except TransientStoreError:
            return _error("Scanner service temporarily unavailable, please scan again.", 503)

        response: dict[str, object] = {"valid": result.valid}
        if result.reason is not None:
            response["reason"] = str(result.reason)
        if result.ticket is not None:
            response.update(
                {
                    "customer": result.ticket.customer_name,
                    "category": result.ticket.category_name,
                    "displayLabel": result.ticket.display_label,
                    "redeemedAt": result.ticket.redeemed_at,
                }
            )
        return JsonResponse(response)


# ---------------------------------------------------------------------------
# Staff API
# ---------------------------------------------------------------------------


class StaffApiMixin(FeatureRequiredMixin, OperatorRequiredMixin):
    required_feature = "admin_api"


class DashboardStatsView(StaffApiMixin, View):
    """Revenue, ticket counts, inventory, and last week's sales."""

    def get(self, request: HttpRequest) -> JsonResponse:  # noqa: ARG002
        return JsonResponse(ReportingService.dashboard_stats())


class OrderListView(StaffApiMixin, View):
    """All orders with their generated ticket counts."""

    def get(self, request: HttpRequest) -> JsonResponse:  # noqa: ARG002
        return JsonResponse(ReportingService.list_orders(), safe=False)


class TicketListView(StaffApiMixin, View):
    """All issued tickets."""

    def get(self, request: HttpRequest) -> JsonResponse:  # noqa: ARG002
        return JsonResponse(ReportingService.list_tickets(), safe=False)


@method_decorator(csrf_exempt, name="dispatch")
class ResendConfirmationView(StaffApiMixin, View):
    """Send a paid order's confirmation email again."""

    def post(self, request: HttpRequest, order_id: UUID) -> JsonResponse:  # noqa: ARG002
        try:
            order = resend_confirmation(order_id)
        except NotFound:
            return _error("Order not found.", 404)
        except ValidationError as exc:
            return _error(_validation_message(exc), 400)
        except NotificationFailure:
            return _error("Email failed to send.", 502)
        return JsonResponse({"success": True, "email": order.customer_email})


@method_decorator(csrf_exempt, name="dispatch")
class CategoryUpdateView(StaffApiMixin, View):
    """Change a category's name, price, or capacity."""

    def post(self, request: HttpRequest, category_id: int) -> JsonResponse:
        try:
            body = _json_body(request)
        except ValidationError as exc:
            return _error(_validation_message(exc), 400)

        form = CategoryUpdateForm(
            data={
                "name": body.get("name", ""),
                "price": body.get("price"),
                "total_quantity": body.get("totalQuantity"),
            }
        )
        if not form.is_valid():
            return _error(_form_message(form), 400)

        try:
            category = CatalogService.update_category(
                category_id,
                name=form.cleaned_data["name"] or None,
                price=form.cleaned_data["price"],
                total_quantity=form.cleaned_data["total_quantity"],
            )
        except NotFound:
            return _error("Category not found.", 404)
        except ValidationError as exc:
            return _error(_validation_message(exc), 400)

        return JsonResponse(
            {
                "id": category.pk,
                "code": category.code,
                "name": category.name,
                "price": category.price,
                "totalQuantity": category.total_quantity,
                "soldQuantity": category.sold_quantity,
            }
        )

    patch = post
