"""Custom signals for the ticketing app.

Signals:
    order_paid: Sent after the transaction that marks an order PAID commits.
        Sender: The ``Order`` class.
        Kwargs:
            order: The ``Order`` instance that was paid.
            tickets_issued: Number of tickets created for the order.
    ticket_redeemed: Sent after a ticket is checked in at the door.
        Sender: The ``Ticket`` class.
        Kwargs:
            ticket: The ``Ticket`` instance that was redeemed.
"""

from django.dispatch import Signal

order_paid = Signal()
ticket_redeemed = Signal()
