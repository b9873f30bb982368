"""Catalog reads and staff edits for ticket categories."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction

from django_boxoffice.ticketing.exceptions import CategoryNotFound
from django_boxoffice.ticketing.models import TicketCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategorySnapshot:
    """Read-only view of a category for the storefront."""

    id: int
    code: str
    name: str
    price: Decimal
    total_quantity: int
    sold_quantity: int
    badge: str

    @property
    def available(self) -> int:
        return max(self.total_quantity - self.sold_quantity, 0)

    def as_dict(self) -> dict[str, object]:
        """Return the JSON shape used by the storefront and booking pages."""
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "price": self.price,
            "totalQuantity": self.total_quantity,
            "soldQuantity": self.sold_quantity,
            "available": self.available,
            "isSoldOut": self.available == 0,
            "badge": self.badge,
        }


def _snapshot(category: TicketCategory) -> CategorySnapshot:
    return CategorySnapshot(
        id=category.pk,
        code=category.code,
        name=category.name,
        price=category.price,
        total_quantity=category.total_quantity,
        sold_quantity=category.sold_quantity,
        badge=category.badge,
    )


class CatalogService:
    """Stateless service for listing and editing ticket categories."""

    @staticmethod
    def list_categories(*, include_inactive: bool = False) -> list[CategorySnapshot]:
        """Return categories ordered by price, cheapest first.

        Args:
            include_inactive: Also return categories that are not on sale.
        """
        qs = TicketCategory.objects.order_by("price", "position", "name")
        if not include_inactive:
            qs = qs.filter(is_active=True)
        return [_snapshot(category) for category in qs]

    @staticmethod
    @transaction.atomic
    def update_category(
        category_id: int,
        *,
        name: str | None = None,
        price: Decimal | None = None,
        total_quantity: int | None = None,
    ) -> TicketCategory:
        """Change a category's name, price, or capacity.

        The sold count is never touched here. Existing orders keep the unit
        price they were created with.

        Raises:
            CategoryNotFound: If no category has this id.
            ValidationError: If the price is negative or the capacity would
                drop below the number of tickets already sold.
        """
        try:
            category = TicketCategory.objects.select_for_update().get(pk=category_id)
        except TicketCategory.DoesNotExist as exc:
            msg = f"Ticket category {category_id} does not exist."
            raise CategoryNotFound(msg) from exc

        update_fields = ["updated_at"]
        if name is not None:
            if not name.strip():
                raise ValidationError("Category name cannot be empty.")
            category.name = name.strip()
            update_fields.append("name")
        if price is not None:
            if price < 0:
                raise ValidationError("Price cannot be negative.")
            category.price = price
            update_fields.append("price")
        if total_quantity is not None:
            if total_quantity < category.sold_quantity:
                raise ValidationError(
                    f"Capacity cannot be lower than the {category.sold_quantity} tickets already sold."
                )
            category.total_quantity = total_quantity
            update_fields.append("total_quantity")

        category.save(update_fields=update_fields)
        logger.info("Updated ticket category '%s' (%s)", category.code, ", ".join(update_fields[1:]) or "no changes")
        return category
