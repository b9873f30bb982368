"""Catalog, order, ticket, and payment-event models for django-boxoffice."""

import uuid
from decimal import Decimal

from django.db import models

from django_boxoffice.settings import get_config


class TicketCategory(models.Model):
    """A purchasable class of ticket (e.g. "Gold", "Tribune", "General").

    ``total_quantity`` is the fixed capacity of the category and
    ``sold_quantity`` the number of tickets issued so far. The sold count is
    written only by ticket issuance while the row is locked, and a database
    check constraint keeps it within capacity.
    """

    code = models.SlugField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(max_digits=10, decimal_places=2)
    total_quantity = models.PositiveIntegerField(default=0)
    sold_quantity = models.PositiveIntegerField(default=0)
    series_prefix = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text='Prefix printed before the seat number, e.g. "GOLD". Empty uses the default prefix.',
    )
    badge = models.CharField(max_length=50, blank=True, default="")
    is_active = models.BooleanField(default=True)
    position = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["price", "position", "name"]
        verbose_name_plural = "ticket categories"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(sold_quantity__lte=models.F("total_quantity")),
                name="boxoffice_category_sold_within_capacity",
            ),
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name="boxoffice_category_price_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

    @property
    def remaining_quantity(self) -> int:
        """Return the number of seats that can still be sold."""
        return max(self.total_quantity - self.sold_quantity, 0)

    @property
    def is_sold_out(self) -> bool:
        return self.remaining_quantity == 0

    @property
    def series(self) -> str:
        """Return the label prefix used for this category's tickets."""
        return self.series_prefix or get_config().default_series_prefix


class Order(models.Model):
    """A customer's purchase of one or more seats.

    Orders are created ``PENDING`` by order intake with a total computed from
    catalog prices, and move to ``PAID`` exactly once when ticket issuance
    runs. ``PAID`` is terminal.
    """

    class Status(models.TextChoices):
        """Lifecycle states for an order."""

        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer_name = models.CharField(max_length=200)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=50, blank=True, default="")
    total = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    stripe_session_id = models.CharField(max_length=200, blank=True, default="")
    payment_intent_id = models.CharField(max_length=200, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.short_id} ({self.status})"

    @property
    def short_id(self) -> str:
        """Return the first eight characters of the id, for humans."""
        return str(self.id)[:8].upper()

    @property
    def is_paid(self) -> bool:
        return self.status == self.Status.PAID


class OrderLineItem(models.Model):
    """One category and quantity on an order.

    The ``unit_price`` is a snapshot of the category price at the time the
    order was created, so later catalog price changes do not affect it.
    Line items are never modified after creation.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="line_items",
    )
    category = models.ForeignKey(
        TicketCategory,
        on_delete=models.PROTECT,
        related_name="order_line_items",
    )
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="boxoffice_lineitem_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.quantity}x {self.category.code}"

    @property
    def line_total(self) -> Decimal:
        """Return the total price for this line (unit_price * quantity)."""
        return self.unit_price * self.quantity


class Ticket(models.Model):
    """A single redeemable seat credential.

    ``sequence_number`` is unique and gap-free within a category and
    ``display_label`` is what gets printed (e.g. ``"GOLD 17"``). The
    ``redemption_code`` is encoded in the ticket's QR code and checked at the
    door; ``status`` moves from ``VALID`` to ``USED`` exactly once.
    """

    class Status(models.TextChoices):
        """Check-in states for a ticket."""

        VALID = "valid", "Valid"
        USED = "used", "Used"

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="tickets",
    )
    category = models.ForeignKey(
        TicketCategory,
        on_delete=models.PROTECT,
        related_name="tickets",
    )
    series_prefix = models.CharField(max_length=20)
    sequence_number = models.PositiveIntegerField()
    display_label = models.CharField(max_length=50)
    redemption_code = models.CharField(max_length=64, unique=True)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.VALID,
    )
    redeemed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["category", "sequence_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["category", "sequence_number"],
                name="boxoffice_ticket_unique_sequence_per_category",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.display_label} ({self.status})"


class StripeEvent(models.Model):
    """A raw Stripe webhook event, stored once per Stripe event id."""

    stripe_id = models.CharField(max_length=200, unique=True)
    kind = models.CharField(max_length=200)
    livemode = models.BooleanField(default=False)
    payload = models.JSONField(default=dict)
    api_version = models.CharField(max_length=50, blank=True, default="")
    processed = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.kind} ({self.stripe_id})"


class EventProcessingException(models.Model):
    """A captured failure while processing a Stripe webhook event."""

    event = models.ForeignKey(
        StripeEvent,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="exceptions",
    )
    data = models.TextField(blank=True, default="")
    message = models.CharField(max_length=500)
    traceback = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.event_id}: {self.message[:50]}"
