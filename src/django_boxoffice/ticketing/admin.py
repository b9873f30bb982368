"""Django admin configuration for the ticketing app."""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.contrib import admin, messages

from django_boxoffice.ticketing.exceptions import NotificationFailure
from django_boxoffice.ticketing.models import (
    EventProcessingException,
    Order,
    OrderLineItem,
    StripeEvent,
    Ticket,
    TicketCategory,
)
from django_boxoffice.ticketing.services.notification import resend_confirmation

if TYPE_CHECKING:
    from django.db.models import QuerySet
    from django.http import HttpRequest


@admin.register(TicketCategory)
class TicketCategoryAdmin(admin.ModelAdmin):
    """Admin interface for ticket categories.

    ``sold_quantity`` is read-only; it only changes when orders are
    confirmed.
    """

    list_display = ("name", "code", "price", "sold_quantity", "total_quantity", "series_prefix", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "code")
    prepopulated_fields = {"code": ("name",)}
    readonly_fields = ("sold_quantity", "created_at", "updated_at")
    ordering = ("price", "position", "name")


class OrderLineItemInline(admin.TabularInline):
    """Line items are price snapshots from order intake and are shown read-only."""

    model = OrderLineItem
    extra = 0
    can_delete = False
    readonly_fields = ("category", "quantity", "unit_price", "line_total")

    def has_add_permission(self, request: HttpRequest, obj: Order | None = None) -> bool:  # noqa: ARG002, D102
        return False


class TicketInline(admin.TabularInline):
    model = Ticket
    extra = 0
    can_delete = False
    readonly_fields = ("display_label", "category", "redemption_code", "status", "redeemed_at")
    fields = readonly_fields

    def has_add_permission(self, request: HttpRequest, obj: Order | None = None) -> bool:  # noqa: ARG002, D102
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin interface for orders.

    Status, totals, and payment references are read-only: orders become
    paid only through confirmation, which also issues their tickets.
    """

    list_display = ("short_id", "customer_name", "customer_email", "status", "total", "created_at")
    list_filter = ("status",)
    search_fields = ("id", "customer_name", "customer_email", "stripe_session_id", "payment_intent_id")
    readonly_fields = (
        "id",
        "status",
        "total",
        "stripe_session_id",
        "payment_intent_id",
        "paid_at",
        "created_at",
        "updated_at",
    )
    inlines = (OrderLineItemInline, TicketInline)
    actions = ("resend_confirmation_email",)

    @admin.action(description="Resend confirmation email")
    def resend_confirmation_email(self, request: HttpRequest, queryset: QuerySet[Order]) -> None:
        sent = 0
        for order in queryset.filter(status=Order.Status.PAID):
            try:
                resend_confirmation(order.pk)
            except NotificationFailure as exc:
                self.message_user(request, str(exc), level=messages.ERROR)
            else:
                sent += 1
        self.message_user(request, f"Sent {sent} confirmation email(s).", level=messages.SUCCESS)


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    """Read-only admin for issued tickets."""

    list_display = ("display_label", "category", "order", "status", "redeemed_at")
    list_filter = ("category", "status")
    search_fields = ("display_label", "redemption_code", "order__customer_name", "order__customer_email")
    readonly_fields = (
        "order",
        "category",
        "series_prefix",
        "sequence_number",
        "display_label",
        "redemption_code",
        "status",
        "redeemed_at",
        "created_at",
    )

    def has_add_permission(self, request: HttpRequest) -> bool:  # noqa: ARG002, D102
        return False

    def has_delete_permission(self, request: HttpRequest, obj: Ticket | None = None) -> bool:  # noqa: ARG002, D102
        return False


@admin.register(StripeEvent)
class StripeEventAdmin(admin.ModelAdmin):
    """Read-only admin for Stripe webhook events."""

    list_display = ("stripe_id", "kind", "processed", "livemode", "created_at")
    list_filter = ("kind", "processed", "livemode")
    search_fields = ("stripe_id",)
    readonly_fields = ("stripe_id", "kind", "livemode", "payload", "processed", "api_version", "created_at")

    def has_add_permission(self, request: HttpRequest) -> bool:  # noqa: ARG002, D102
        return False

    def has_change_permission(self, request: HttpRequest, obj: StripeEvent | None = None) -> bool:  # noqa: ARG002, D102
        return False


@admin.register(EventProcessingException)
class EventProcessingExceptionAdmin(admin.ModelAdmin):
    """Read-only admin for webhook processing errors."""

    list_display = ("message", "event", "created_at")
    list_filter = ("created_at",)
    search_fields = ("message",)
    readonly_fields = ("event", "data", "message", "traceback", "created_at")

    def has_add_permission(self, request: HttpRequest) -> bool:  # noqa: ARG002, D102
        return False

    def has_change_permission(self, request: HttpRequest, obj: EventProcessingException | None = None) -> bool:  # noqa: ARG002, D102
        return False
