"""Read-only sales figures and listings for staff."""

from datetime import timedelta
from decimal import Decimal

from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from django_boxoffice.ticketing.models import Order, Ticket
from django_boxoffice.ticketing.services.catalog import CatalogService

_ZERO = Decimal("0.00")
_SALES_WINDOW_DAYS = 7
_RECENT_ORDERS = 10


def _money(value: Decimal | None) -> Decimal:
    """Return *value* with two decimal places; some backends drop the scale on sums."""
    return (value or _ZERO).quantize(_ZERO)


def _order_row(order: Order) -> dict[str, object]:
    row: dict[str, object] = {
        "id": str(order.pk),
        "shortId": order.short_id,
        "customerName": order.customer_name,
        "customerEmail": order.customer_email,
        "customerPhone": order.customer_phone,
        "total": order.total,
        "status": order.status,
        "createdAt": order.created_at,
        "paidAt": order.paid_at,
    }
    tickets_count = getattr(order, "tickets_count", None)
    if tickets_count is not None:
        row["ticketsGenerated"] = tickets_count
    return row


class ReportingService:
    """Stateless queries behind the staff dashboard."""

    @staticmethod
    def dashboard_stats() -> dict[str, object]:
        """Return revenue, ticket counts, inventory, and recent sales.

        ``salesByDay`` always holds one entry per day of the last week,
        oldest first, with zeros for days without sales.
        """
        paid = Order.objects.filter(status=Order.Status.PAID)
        revenue = _money(paid.aggregate(total=Sum("total"))["total"])
        ticket_counts = Ticket.objects.aggregate(
            sold=Count("id"),
            redeemed=Count("id", filter=Q(status=Ticket.Status.USED)),
        )

        today = timezone.localdate()
        start = today - timedelta(days=_SALES_WINDOW_DAYS - 1)
        daily_rows = (
            paid.filter(paid_at__date__gte=start)
            .annotate(day=TruncDate("paid_at"))
            .values("day")
            .annotate(orders=Count("id"), revenue=Sum("total"))
            .order_by("day")
        )
        by_day = {row["day"]: row for row in daily_rows}
        sales_by_day = []
        for offset in range(_SALES_WINDOW_DAYS):
            day = start + timedelta(days=offset)
            row = by_day.get(day)
            sales_by_day.append(
                {
                    "date": day.isoformat(),
                    "orders": row["orders"] if row else 0,
                    "revenue": _money(row["revenue"] if row else None),
                }
            )

        recent = paid.order_by("-paid_at", "-created_at")[:_RECENT_ORDERS]

        return {
            "revenue": revenue,
            "paidOrders": paid.count(),
            "pendingOrders": Order.objects.filter(status=Order.Status.PENDING).count(),
            "ticketsSold": ticket_counts["sold"],
            "ticketsRedeemed": ticket_counts["redeemed"],
            "inventory": [
                snapshot.as_dict() for snapshot in CatalogService.list_categories(include_inactive=True)
            ],
            "salesByDay": sales_by_day,
            "recentOrders": [_order_row(order) for order in recent],
        }

    @staticmethod
    def list_orders() -> list[dict[str, object]]:
        """Return every order, newest first, with how many tickets it has."""
        orders = Order.objects.annotate(tickets_count=Count("tickets")).order_by("-created_at")
        return [_order_row(order) for order in orders]

    @staticmethod
    def list_tickets() -> list[dict[str, object]]:
        """Return every ticket with its category, buyer, status, and code."""
        tickets = Ticket.objects.select_related("order", "category").order_by("category_id", "sequence_number")
        return [
            {
                "id": ticket.pk,
                "orderId": str(ticket.order_id),
                "customerName": ticket.order.customer_name,
                "categoryName": ticket.category.name,
                "displayLabel": ticket.display_label,
                "redemptionCode": ticket.redemption_code,
                "status": ticket.status,
                "redeemedAt": ticket.redeemed_at,
                "createdAt": ticket.created_at,
            }
            for ticket in tickets
        ]
