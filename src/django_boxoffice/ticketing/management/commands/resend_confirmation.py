"""Management command to resend an order's confirmation email."""

from typing import Any

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError, CommandParser

from django_boxoffice.ticketing.exceptions import NotificationFailure, OrderNotFound
from django_boxoffice.ticketing.services.notification import resend_confirmation


class Command(BaseCommand):
    help = "Resend the confirmation email for a paid order."

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument("order_id", help="The order's id.")

    def handle(self, *args: Any, **options: Any) -> None:
        try:
            order = resend_confirmation(options["order_id"])
        except (OrderNotFound, NotificationFailure) as exc:
            raise CommandError(str(exc)) from exc
        except ValidationError as exc:
            raise CommandError(" ".join(exc.messages)) from exc

        self.stdout.write(self.style.SUCCESS(f"Sent confirmation for order {order.short_id} to {order.customer_email}."))
