"""Order intake: turning a customer's cart into a pending order.

Intake only reads category capacity to turn away carts that obviously cannot
be filled. It never reserves seats or touches ``sold_quantity``; seats are
allocated when the order is confirmed.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction

from django_boxoffice.settings import get_config
from django_boxoffice.ticketing.exceptions import CategoryNotFound
from django_boxoffice.ticketing.models import Order, OrderLineItem, TicketCategory
from django_boxoffice.ticketing.stripe_client import StripeClient, success_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerDetails:
    """Who is buying."""

    name: str
    email: str
    phone: str = ""


@dataclass(frozen=True)
class CartLine:
    """One requested (category, quantity) pair. Client prices are never accepted."""

    category_id: int
    quantity: int


@dataclass(frozen=True)
class PlacedOrder:
    """A pending order and where to send the buyer to pay for it."""

    order: Order
    payment_redirect_url: str


def _merge_lines(lines: list[CartLine]) -> dict[int, int]:
    """Collapse repeated categories into one quantity per category."""
    merged: dict[int, int] = defaultdict(int)
    for line in lines:
        try:
            category_id = int(line.category_id)
            quantity = int(line.quantity)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Cart lines need an integer category id and quantity.") from exc
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.")
        merged[category_id] += quantity
    return dict(merged)


class OrderIntakeService:
    """Stateless service for creating pending orders."""

    @staticmethod
    @transaction.atomic
    def create_order(customer: CustomerDetails, lines: list[CartLine]) -> Order:
        """Validate a cart and persist it as a ``PENDING`` order.

        The total is computed from the catalog prices at the moment of the
        call, and each line item keeps that unit price. Nothing is written
        unless every line is valid.

        Args:
            customer: Buyer name, email, and optional phone.
            lines: Requested categories and quantities.

        Returns:
            The new pending :class:`Order`.

        Raises:
            ValidationError: If the customer details or cart are invalid, a
                category is not on sale, or a category has fewer seats left
                than requested.
            CategoryNotFound: If a line references an unknown category.
        """
        name = customer.name.strip()
        email = customer.email.strip()
        if not name:
            raise ValidationError("Customer name is required.")
        if not email:
            raise ValidationError("Customer email is required.")
        validate_email(email)

        if not lines:
            raise ValidationError("Cart is empty.")
        quantities = _merge_lines(lines)

        max_tickets = get_config().max_tickets_per_order
        if sum(quantities.values()) > max_tickets:
            raise ValidationError(f"An order may contain at most {max_tickets} tickets.")

        categories = TicketCategory.objects.in_bulk(list(quantities))
        missing = sorted(set(quantities) - set(categories))
        if missing:
            msg = f"Ticket category {missing[0]} does not exist."
            raise CategoryNotFound(msg)

        total = Decimal("0.00")
        for category_id, quantity in quantities.items():
            category = categories[category_id]
            if not category.is_active:
                raise ValidationError(f"'{category.name}' is not on sale.")
            if category.remaining_quantity < quantity:
                raise ValidationError(
                    f"Only {category.remaining_quantity} tickets of '{category.name}' remaining, "
                    f"but {quantity} requested."
                )
            total += category.price * quantity

        order = Order.objects.create(
            customer_name=name,
            customer_email=email,
            customer_phone=customer.phone.strip(),
            total=total,
            status=Order.Status.PENDING,
        )
        OrderLineItem.objects.bulk_create(
            [
                OrderLineItem(
                    order=order,
                    category=categories[category_id],
                    quantity=quantity,
                    unit_price=categories[category_id].price,
                )
                for category_id, quantity in sorted(quantities.items())
            ]
        )

        logger.info(
            "Created order %s for %d tickets (total %s)",
            order.pk,
            sum(quantities.values()),
            total,
        )
        return order

    @staticmethod
    def place_order(customer: CustomerDetails, lines: list[CartLine]) -> PlacedOrder:
        """Create a pending order and open a payment session for it.

        Free orders skip the payment provider; the buyer goes straight to
        the success page, which confirms the order.

        Raises:
            ValidationError: See :meth:`create_order`.
            CategoryNotFound: See :meth:`create_order`.
            stripe.StripeError: If the payment session could not be created.
                The pending order is left in place and never issues tickets.
        """
        order = OrderIntakeService.create_order(customer, lines)
        if order.total <= 0:
            return PlacedOrder(order=order, payment_redirect_url=success_url(order))

        session = StripeClient().create_checkout_session(order)
        order.stripe_session_id = session.id
        order.save(update_fields=["stripe_session_id", "updated_at"])
        logger.info("Opened checkout session %s for order %s", session.id, order.pk)
        return PlacedOrder(order=order, payment_redirect_url=session.url)
