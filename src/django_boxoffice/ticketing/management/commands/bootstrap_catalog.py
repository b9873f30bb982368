"""Management command to create ticket categories from a TOML configuration file."""

from typing import Any

from django.core.management.base import BaseCommand, CommandError, CommandParser
from django.db import transaction

from django_boxoffice.config_loader import load_catalog_config
from django_boxoffice.ticketing.models import TicketCategory

# Mapping from TOML short field names to Django model field names.
_CATEGORY_FIELD_MAP: dict[str, str] = {
    "name": "name",
    "description": "description",
    "price": "price",
    "quantity": "total_quantity",
    "series": "series_prefix",
    "badge": "badge",
    "active": "is_active",
    "position": "position",
}


def _map_fields(data: dict[str, Any], field_map: dict[str, str]) -> dict[str, Any]:
    """Map TOML config keys to Django model field names."""
    result: dict[str, Any] = {}
    for config_key, model_field in field_map.items():
        if config_key in data:
            result[model_field] = data[config_key]
    return result


class Command(BaseCommand):
    """Create or update ticket categories from a TOML configuration file.

    Usage::

        manage.py bootstrap_catalog --config catalog.toml
        manage.py bootstrap_catalog --config catalog.toml --update
        manage.py bootstrap_catalog --config catalog.toml --dry-run

    Sold counts are never changed. Updating a category's capacity below
    the number of tickets already sold is refused.
    """

    help = "Create or update ticket categories from a TOML config file."

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--config",
            required=True,
            help="Path to the catalog TOML configuration file.",
        )
        parser.add_argument(
            "--update",
            action="store_true",
            default=False,
            help="Update existing categories matched by code instead of skipping them.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            default=False,
            help="Validate the config and print what would be created without saving.",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        config_path: str = options["config"]
        update: bool = options["update"]
        dry_run: bool = options["dry_run"]

        try:
            catalog = load_catalog_config(config_path)
        except (FileNotFoundError, TypeError, ValueError) as exc:
            raise CommandError(str(exc)) from exc

        categories_data: list[dict[str, Any]] = catalog["categories"]

        if dry_run:
            self._print_dry_run(catalog, categories_data)
            return

        with transaction.atomic():
            created, updated, skipped = self._bootstrap_categories(categories_data, update=update)

        self.stdout.write(
            self.style.SUCCESS(
                f"Catalog ready: {len(created)} created, {len(updated)} updated, {len(skipped)} skipped."
            )
        )

    def _bootstrap_categories(
        self,
        categories_data: list[dict[str, Any]],
        *,
        update: bool,
    ) -> tuple[list[TicketCategory], list[TicketCategory], list[str]]:
        """Create or update TicketCategory records.

        Returns:
            A tuple of (created, updated, skipped codes).

        Raises:
            CommandError: If an update would drop capacity below the sold count.
        """
        created: list[TicketCategory] = []
        updated: list[TicketCategory] = []
        skipped: list[str] = []

        for position, category_data in enumerate(categories_data):
            code = category_data["code"]
            fields = _map_fields(category_data, _CATEGORY_FIELD_MAP)
            fields.setdefault("position", position)

            existing = TicketCategory.objects.select_for_update().filter(code=code).first()
            if existing and update:
                new_capacity = fields.get("total_quantity", existing.total_quantity)
                if new_capacity < existing.sold_quantity:
                    raise CommandError(
                        f"Category '{code}' has {existing.sold_quantity} tickets sold; "
                        f"capacity cannot be set to {new_capacity}."
                    )
                for attr, value in fields.items():
                    setattr(existing, attr, value)
                existing.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated category: {existing.name}"))
                updated.append(existing)
            elif existing:
                self.stdout.write(self.style.WARNING(f"  Category '{code}' already exists, skipping."))
                skipped.append(code)
            else:
                category = TicketCategory.objects.create(code=code, **fields)
                self.stdout.write(self.style.SUCCESS(f"  Created category: {category.name}"))
                created.append(category)

        return created, updated, skipped

    def _print_dry_run(self, catalog: dict[str, Any], categories_data: list[dict[str, Any]]) -> None:
        self.stdout.write(self.style.NOTICE("Dry run -- nothing will be saved."))
        if catalog.get("name"):
            self.stdout.write(f"Catalog: {catalog['name']}")
        for category_data in categories_data:
            self.stdout.write(
                f"  {category_data['code']}: {category_data['name']} "
                f"({category_data['price']}, {category_data['quantity']} seats)"
            )
