"""Tests for RedemptionService in django_boxoffice.ticketing.services.redemption."""

import threading
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import OperationalError, connection

from django_boxoffice.ticketing.exceptions import TransientStoreError
from django_boxoffice.ticketing.models import Order, OrderLineItem, Ticket, TicketCategory
from django_boxoffice.ticketing.services.issuance import TicketIssuanceService
from django_boxoffice.ticketing.services.redemption import RedemptionService, RejectionReason
from django_boxoffice.ticketing.signals import ticket_redeemed

# -- Fixtures -----------------------------------------------------------------


@pytest.fixture
def category(db):
    return TicketCategory.objects.create(
        code="tribune",
        name="Tribune",
        price=Decimal("150.00"),
        total_quantity=50,
        series_prefix="TRB",
    )


@pytest.fixture
def ticket(category):
    order = Order.objects.create(
        customer_name="Ion Ionescu",
        customer_email="ion@example.com",
        total=Decimal("150.00"),
    )
    OrderLineItem.objects.create(order=order, category=category, quantity=1, unit_price=category.price)
    TicketIssuanceService.confirm_order(order.pk)
    return order.tickets.get()


# =============================================================================
# TestRedeem
# =============================================================================


@pytest.mark.django_db
class TestRedeem:
    def test_valid_ticket_is_admitted(self, ticket):
        result = RedemptionService.redeem(ticket.redemption_code)

        ticket.refresh_from_db()
        assert result.valid is True
        assert result.reason is None
        assert result.ticket.customer_name == "Ion Ionescu"
        assert result.ticket.category_name == "Tribune"
        assert result.ticket.display_label == "TRB 1"
        assert result.ticket.order_id == ticket.order_id
        assert ticket.status == Ticket.Status.USED
        assert ticket.redeemed_at is not None

    def test_second_scan_reports_already_used(self, ticket):
        RedemptionService.redeem(ticket.redemption_code)

        result = RedemptionService.redeem(ticket.redemption_code)

        assert result.valid is False
        assert result.reason == RejectionReason.ALREADY_USED
        assert result.ticket.customer_name == "Ion Ionescu"
        assert result.ticket.display_label == "TRB 1"
        assert result.ticket.redeemed_at is not None

    def test_unknown_code(self, db):
        result = RedemptionService.redeem("NOPE0-NOPE0-NOPE0-NOPE0")

        assert result.valid is False
        assert result.reason == RejectionReason.UNKNOWN_CODE
        assert result.ticket is None

    @pytest.mark.parametrize("code", ["", "   ", None])
    def test_blank_code_is_unknown(self, db, code):
        result = RedemptionService.redeem(code)

        assert result.valid is False
        assert result.reason == RejectionReason.UNKNOWN_CODE

    def test_surrounding_whitespace_is_ignored(self, ticket):
        result = RedemptionService.redeem(f"  {ticket.redemption_code}\n")

        assert result.valid is True

    def test_lost_race_reports_already_used(self, ticket):
        # Another device flips the ticket between the lookup and the update.
        original_filter = Ticket.objects.filter

        def racing_filter(*args, **kwargs):
            if "status" in kwargs:
                Ticket.objects.all().update(status=Ticket.Status.USED)
            return original_filter(*args, **kwargs)

        with patch.object(Ticket.objects, "filter", side_effect=racing_filter):
            result = RedemptionService.redeem(ticket.redemption_code)

        assert result.valid is False
        assert result.reason == RejectionReason.ALREADY_USED

    def test_signal_fires_after_commit(self, ticket, django_capture_on_commit_callbacks):
        received = []

        def handler(sender, ticket, **kwargs):
            received.append(ticket.pk)

        ticket_redeemed.connect(handler)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                RedemptionService.redeem(ticket.redemption_code)
        finally:
            ticket_redeemed.disconnect(handler)

        assert received == [ticket.pk]

    def test_store_error_is_transient(self, ticket):
        with (
            patch.object(Ticket.objects, "select_related", side_effect=OperationalError("server closed")),
            pytest.raises(TransientStoreError),
        ):
            RedemptionService.redeem(ticket.redemption_code)

    def test_rejection_reason_values(self):
        assert str(RejectionReason.UNKNOWN_CODE) == "unknown_code"
        assert str(RejectionReason.ALREADY_USED) == "already_used"


# =============================================================================
# TestConcurrentRedemption (PostgreSQL only)
# =============================================================================


@pytest.mark.postgres
@pytest.mark.django_db(transaction=True)
class TestConcurrentRedemption:
    @pytest.fixture(autouse=True)
    def _require_row_locks(self, db):
        if not connection.features.has_select_for_update or connection.vendor != "postgresql":
            pytest.skip("Row-lock concurrency needs PostgreSQL")

    def test_exactly_one_concurrent_scan_wins(self, ticket):
        results = []
        barrier = threading.Barrier(6)

        def scan():
            try:
                barrier.wait()
                results.append(RedemptionService.redeem(ticket.redemption_code))
            finally:
                connection.close()

        threads = [threading.Thread(target=scan) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 6
        assert sum(1 for r in results if r.valid) == 1
        assert all(r.reason == RejectionReason.ALREADY_USED for r in results if not r.valid)
