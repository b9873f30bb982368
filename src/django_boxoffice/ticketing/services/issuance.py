"""Ticket issuance: marking orders paid and minting their tickets.

Confirmation runs as one transaction. The order row is locked first so two
confirmations of the same order serialize and the second one sees ``PAID``
and does nothing. Each category row is then locked while its sold count is
read, the next contiguous block of seat numbers is handed out, and the new
count is written back, so concurrent orders for one category never share or
skip a number. Any failure before commit rolls the whole confirmation back;
the order stays ``PENDING`` and the call can be retried.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from django_boxoffice.settings import get_config
from django_boxoffice.ticketing.exceptions import (
    CapacityExceeded,
    OrderNotFound,
    RedemptionCodeExhausted,
)
from django_boxoffice.ticketing.models import Order, Ticket, TicketCategory
from django_boxoffice.ticketing.services.codes import format_display_label, generate_redemption_code
from django_boxoffice.ticketing.services.locking import locked_transaction
from django_boxoffice.ticketing.signals import order_paid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuanceResult:
    """Outcome of a confirmation attempt."""

    order_id: UUID
    already_paid: bool
    tickets_issued: int


@dataclass(frozen=True)
class RegenerationResult:
    """Outcome of the administrative ticket reset."""

    orders: int
    tickets: int


class TicketIssuanceService:
    """Stateless service that confirms orders and issues their tickets."""

    @staticmethod
    def confirm_order(order_id: UUID | str, *, regenerate_missing: bool = False) -> IssuanceResult:
        """Mark an order paid and issue one ticket per purchased seat.

        Safe to call any number of times for the same order: only the first
        successful call changes anything. Later calls return
        ``already_paid=True`` with ``tickets_issued=0``.

        Args:
            order_id: The order's primary key.
            regenerate_missing: For an order that is already paid, issue
                tickets for any seats that have none (for example after a
                partial data repair). Has no effect on pending orders.

        Returns:
            An :class:`IssuanceResult`.

        Raises:
            OrderNotFound: If no order has this id.
            CapacityExceeded: If a category would be oversold; nothing is
                committed and the order stays pending.
            TransientStoreError: If the database could not complete the
                transaction; the call may be retried.
        """
        with locked_transaction(f"confirmation of order {order_id}"):
            order = _lock_order(order_id)

            if order.status == Order.Status.PAID:
                issued = _issue_tickets(order, missing_only=True) if regenerate_missing else 0
                already_paid = True
            else:
                order.status = Order.Status.PAID
                order.paid_at = timezone.now()
                order.save(update_fields=["status", "paid_at", "updated_at"])
                issued = _issue_tickets(order, missing_only=False)
                already_paid = False
                transaction.on_commit(
                    lambda: order_paid.send(sender=Order, order=order, tickets_issued=issued),
                )

        if already_paid:
            logger.info("Order %s already paid; issued %d missing tickets", order.pk, issued)
        else:
            logger.info("Order %s marked PAID with %d tickets", order.pk, issued)
        return IssuanceResult(order_id=order.pk, already_paid=already_paid, tickets_issued=issued)

    @staticmethod
    def regenerate_all_tickets() -> RegenerationResult:
        """Delete every ticket and re-issue tickets for all paid orders.

        Sold counts are reset to zero first, then paid orders are processed
        oldest first, so seat numbers are reassigned from 1 in purchase order.
        Previously printed tickets and redemption codes stop working. This is
        a maintenance operation and is not part of the normal sales flow.

        Returns:
            A :class:`RegenerationResult` with the number of orders and
            tickets processed.
        """
        with locked_transaction("ticket regeneration"):
            paid = Order.objects.select_for_update().filter(status=Order.Status.PAID)
            orders = list(paid.order_by("created_at", "pk"))
            # Lock every category before their counters are zeroed.
            list(TicketCategory.objects.select_for_update().order_by("pk"))

            Ticket.objects.all().delete()
            TicketCategory.objects.update(sold_quantity=0, updated_at=timezone.now())

            tickets = 0
            for order in orders:
                tickets += _issue_tickets(order, missing_only=False)

        logger.warning("Regenerated %d tickets for %d paid orders", tickets, len(orders))
        return RegenerationResult(orders=len(orders), tickets=tickets)


def _lock_order(order_id: UUID | str) -> Order:
    """Return the order locked for update, or raise :class:`OrderNotFound`."""
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except (Order.DoesNotExist, ValidationError) as exc:
        msg = f"Order {order_id} does not exist."
        raise OrderNotFound(msg) from exc


def _issue_tickets(order: Order, *, missing_only: bool) -> int:
    """Issue tickets for every seat on *order* and return how many were created.

    When *missing_only* is set, seats already covered by existing tickets
    are skipped and the replacements take the seat numbers left vacant in
    their category, since those seats were counted as sold when the order
    was first confirmed.
    """
    required: dict[int, int] = defaultdict(int)
    for item in order.line_items.all():
        required[item.category_id] += item.quantity

    existing: dict[int, int] = {}
    if missing_only:
        existing = dict(
            Ticket.objects.filter(order=order)
            .order_by()
            .values("category_id")
            .annotate(count=models.Count("id"))
            .values_list("category_id", "count")
        )

    issued = 0
    # Categories are locked in primary-key order so two multi-category
    # orders can never wait on each other.
    for category_id in sorted(required):
        quantity = required[category_id] - existing.get(category_id, 0)
        if quantity > 0:
            issued += _allocate(order, category_id, quantity, reuse_vacant=missing_only)
    return issued


def _vacant_sequence_numbers(category: TicketCategory, limit: int) -> list[int]:
    """Return up to *limit* sold seat numbers in *category* that no ticket holds."""
    taken = set(Ticket.objects.filter(category=category).values_list("sequence_number", flat=True))
    vacant = [number for number in range(1, category.sold_quantity + 1) if number not in taken]
    return vacant[:limit]


def _allocate(order: Order, category_id: int, quantity: int, *, reuse_vacant: bool = False) -> int:
    """Lock a category, hand out *quantity* seat numbers, and bump its sold count.

    With *reuse_vacant*, sold seat numbers that lost their ticket are filled
    first and only the remainder is counted as newly sold, so the sold count
    keeps matching the number of tickets in the category.
    """
    category = TicketCategory.objects.select_for_update().get(pk=category_id)
    base = category.sold_quantity

    sequence_numbers = _vacant_sequence_numbers(category, quantity) if reuse_vacant else []
    new_seats = quantity - len(sequence_numbers)

    if base + new_seats > category.total_quantity:
        logger.error(
            "Cannot issue %d '%s' tickets for order %s: %d of %d already sold",
            new_seats,
            category.code,
            order.pk,
            base,
            category.total_quantity,
        )
        msg = (
            f"Only {category.remaining_quantity} tickets of '{category.name}' remaining, "
            f"but {new_seats} needed for order {order.pk}."
        )
        raise CapacityExceeded(msg)

    sequence_numbers.extend(range(base + 1, base + new_seats + 1))
    series = category.series
    for sequence_number in sequence_numbers:
        _create_ticket(order, category, series, sequence_number)

    if new_seats:
        category.sold_quantity = base + new_seats
        category.save(update_fields=["sold_quantity", "updated_at"])
    return quantity


def _create_ticket(order: Order, category: TicketCategory, series: str, sequence_number: int) -> Ticket:
    """Insert one valid ticket, drawing a new code if the first one collides.

    Each insert runs in a savepoint so a collision does not poison the
    surrounding transaction.
    """
    attempts = get_config().redemption_code_attempts
    for _ in range(attempts):
        code = generate_redemption_code()
        try:
            with transaction.atomic():
                return Ticket.objects.create(
                    order=order,
                    category=category,
                    series_prefix=series,
                    sequence_number=sequence_number,
                    display_label=format_display_label(series, sequence_number),
                    redemption_code=code,
                    status=Ticket.Status.VALID,
                )
        except IntegrityError:
            if not Ticket.objects.filter(redemption_code=code).exists():
                raise
            logger.warning("Redemption code collision for order %s, drawing a new code", order.pk)

    msg = f"Could not generate a unique redemption code after {attempts} attempts."
    raise RedemptionCodeExhausted(msg)
