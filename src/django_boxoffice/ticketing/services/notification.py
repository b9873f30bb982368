"""Order confirmation email and the confirm-then-notify flow.

Email is sent only after the issuance transaction has committed. A failed
send never undoes a confirmation; it is reported back to the caller as a
warning on an otherwise successful result.
"""

import logging
import smtplib
from dataclasses import dataclass
from uuid import UUID

from django.core.exceptions import ValidationError
from django.core.mail import EmailMultiAlternatives
from django.utils.html import format_html, format_html_join

from django_boxoffice.settings import get_config
from django_boxoffice.ticketing.exceptions import NotificationFailure, OrderNotFound
from django_boxoffice.ticketing.models import Order
from django_boxoffice.ticketing.services.issuance import TicketIssuanceService

logger = logging.getLogger(__name__)

EMAIL_FAILED_WARNING = "Order confirmed but email failed to send"


@dataclass(frozen=True)
class ConfirmationOutcome:
    """What the buyer-facing confirm endpoint reports."""

    success: bool
    already_paid: bool
    tickets_issued: int
    email_sent: bool
    warning: str | None = None


def ticket_link(order: Order) -> str:
    """Return the public page where the buyer can view their tickets."""
    return f"{get_config().site_url.rstrip('/')}/tickets/view/{order.pk}"


def _get_order(order_id: UUID | str) -> Order:
    try:
        return Order.objects.get(pk=order_id)
    except (Order.DoesNotExist, ValidationError) as exc:
        msg = f"Order {order_id} does not exist."
        raise OrderNotFound(msg) from exc


def send_order_confirmation(order: Order) -> None:
    """Email the buyer a link to their tickets.

    Raises:
        NotificationFailure: If the order has no email address or the mail
            backend could not deliver the message.
    """
    if not order.customer_email:
        msg = f"Order {order.pk} has no customer email."
        raise NotificationFailure(msg)

    config = get_config()
    link = ticket_link(order)
    tickets = list(order.tickets.select_related("category").order_by("category_id", "sequence_number"))

    lines = [
        f"Hello {order.customer_name},",
        "",
        f"Your order {order.short_id} is confirmed.",
        "",
    ]
    lines.extend(f"  {ticket.category.name}: {ticket.display_label}" for ticket in tickets)
    lines.extend(
        [
            "",
            f"Total paid: {order.total} {config.currency_symbol}",
            f"View your tickets: {link}",
        ]
    )
    html = format_html(
        "<p>Hello {},</p><p>Your order <strong>{}</strong> is confirmed.</p><ul>{}</ul>"
        '<p>Total paid: {} {}</p><p><a href="{}">View your tickets</a></p>',
        order.customer_name,
        order.short_id,
        format_html_join("", "<li>{}: {}</li>", ((t.category.name, t.display_label) for t in tickets)),
        order.total,
        config.currency_symbol,
        link,
    )

    message = EmailMultiAlternatives(
        subject=f"{config.email.subject_prefix} #{order.short_id}",
        body="\n".join(lines),
        from_email=config.email.from_email,
        to=[order.customer_email],
    )
    message.attach_alternative(html, "text/html")
    try:
        message.send(fail_silently=False)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Failed to send confirmation for order %s: %s", order.pk, exc)
        msg = f"Could not send confirmation email for order {order.pk}."
        raise NotificationFailure(msg) from exc
    except Exception as exc:
        logger.exception("Email backend error sending confirmation for order %s", order.pk)
        msg = f"Could not send confirmation email for order {order.pk}."
        raise NotificationFailure(msg) from exc

    logger.info("Sent confirmation for order %s to %s", order.pk, order.customer_email)


def confirm_and_notify(order_id: UUID | str, *, regenerate_missing: bool = False) -> ConfirmationOutcome:
    """Confirm an order and, once committed, email the buyer.

    A repeated confirmation does not email again unless
    ``BOXOFFICE["resend_on_already_paid"]`` is set.

    Raises:
        OrderNotFound: If no order has this id.
        CapacityExceeded: If issuing would oversell a category.
        TransientStoreError: If the store could not complete the transaction.
    """
    result = TicketIssuanceService.confirm_order(order_id, regenerate_missing=regenerate_missing)

    if result.already_paid and not get_config().resend_on_already_paid:
        return ConfirmationOutcome(
            success=True,
            already_paid=True,
            tickets_issued=result.tickets_issued,
            email_sent=False,
        )

    try:
        send_order_confirmation(_get_order(result.order_id))
    except NotificationFailure:
        return ConfirmationOutcome(
            success=True,
            already_paid=result.already_paid,
            tickets_issued=result.tickets_issued,
            email_sent=False,
            warning=EMAIL_FAILED_WARNING,
        )

    return ConfirmationOutcome(
        success=True,
        already_paid=result.already_paid,
        tickets_issued=result.tickets_issued,
        email_sent=True,
    )


def resend_confirmation(order_id: UUID | str) -> Order:
    """Send the confirmation email again for a paid order.

    Raises:
        OrderNotFound: If no order has this id.
        ValidationError: If the order has not been paid.
        NotificationFailure: If the email could not be sent.
    """
    order = _get_order(order_id)
    if not order.is_paid:
        raise ValidationError("Only paid orders have a confirmation to resend.")
    send_order_confirmation(order)
    return order
