"""Redemption gate for checking tickets in at the door.

A scan flips a ticket from ``VALID`` to ``USED`` with a single conditional
``UPDATE ... WHERE status = 'valid'``. When two devices scan the same code at
once, exactly one update changes a row; the other sees zero affected rows
and reports the ticket as already used.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from django_boxoffice.ticketing.models import Ticket
from django_boxoffice.ticketing.services.locking import translate_store_errors
from django_boxoffice.ticketing.signals import ticket_redeemed

logger = logging.getLogger(__name__)


class RejectionReason(enum.StrEnum):
    """Why a scanned code was not admitted."""

    UNKNOWN_CODE = "unknown_code"
    ALREADY_USED = "already_used"


@dataclass(frozen=True)
class TicketSummary:
    """What door staff see about a scanned ticket."""

    order_id: UUID
    customer_name: str
    category_name: str
    display_label: str
    redeemed_at: datetime | None


@dataclass(frozen=True)
class RedemptionResult:
    """Outcome of a scan: admitted, already used, or unknown."""

    valid: bool
    ticket: TicketSummary | None = None
    reason: RejectionReason | None = None


def _summarize(ticket: Ticket) -> TicketSummary:
    return TicketSummary(
        order_id=ticket.order_id,
        customer_name=ticket.order.customer_name,
        category_name=ticket.category.name,
        display_label=ticket.display_label,
        redeemed_at=ticket.redeemed_at,
    )


class RedemptionService:
    """Stateless service for door check-in."""

    @staticmethod
    def redeem(code: str) -> RedemptionResult:
        """Check in the ticket with the given redemption code.

        Args:
            code: The scanned redemption code.

        Returns:
            ``valid=True`` with the ticket summary when the ticket was
            admitted by this call. ``valid=False`` with reason
            ``ALREADY_USED`` (and the original purchaser, so staff can spot
            copied tickets) or ``UNKNOWN_CODE`` otherwise.

        Raises:
            TransientStoreError: If the database is unavailable.
        """
        code = (code or "").strip()
        if not code:
            return RedemptionResult(valid=False, reason=RejectionReason.UNKNOWN_CODE)

        with translate_store_errors("ticket redemption"):
            ticket = Ticket.objects.select_related("order", "category").filter(redemption_code=code).first()
            if ticket is None:
                logger.info("Rejected unknown redemption code")
                return RedemptionResult(valid=False, reason=RejectionReason.UNKNOWN_CODE)

            if ticket.status == Ticket.Status.USED:
                logger.warning("Rejected already used ticket %s (order %s)", ticket.display_label, ticket.order_id)
                return RedemptionResult(valid=False, ticket=_summarize(ticket), reason=RejectionReason.ALREADY_USED)

            now = timezone.now()
            updated = Ticket.objects.filter(pk=ticket.pk, status=Ticket.Status.VALID).update(
                status=Ticket.Status.USED,
                redeemed_at=now,
            )
            if updated == 0:
                ticket.refresh_from_db(fields=["status", "redeemed_at"])
                logger.warning("Ticket %s was redeemed by a concurrent scan", ticket.display_label)
                return RedemptionResult(valid=False, ticket=_summarize(ticket), reason=RejectionReason.ALREADY_USED)

        ticket.status = Ticket.Status.USED
        ticket.redeemed_at = now
        transaction.on_commit(lambda: ticket_redeemed.send(sender=Ticket, ticket=ticket))
        logger.info("Admitted ticket %s (order %s)", ticket.display_label, ticket.order_id)
        return RedemptionResult(valid=True, ticket=_summarize(ticket))
