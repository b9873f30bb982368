"""Management command to rebuild every ticket from the paid orders."""

from typing import Any

from django.core.management.base import BaseCommand, CommandError, CommandParser

from django_boxoffice.ticketing.services.issuance import TicketIssuanceService


class Command(BaseCommand):
    """Delete all tickets and re-issue them for every paid order.

    Seat numbers restart from 1 in purchase order and every redemption code
    changes, so tickets already sent to buyers stop working. Requires
    ``--yes``.
    """

    help = "Delete all tickets, reset sold counts, and re-issue tickets for every paid order."

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--yes",
            action="store_true",
            default=False,
            help="Confirm that existing tickets and redemption codes may be destroyed.",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        if not options["yes"]:
            raise CommandError("This destroys every issued ticket. Re-run with --yes to proceed.")

        result = TicketIssuanceService.regenerate_all_tickets()
        self.stdout.write(
            self.style.SUCCESS(f"Regenerated {result.tickets} tickets for {result.orders} paid orders.")
        )
