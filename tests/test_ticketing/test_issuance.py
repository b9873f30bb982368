"""Tests for TicketIssuanceService in django_boxoffice.ticketing.services.issuance."""

import threading
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import OperationalError, connection
from django.test import override_settings

from django_boxoffice.ticketing.exceptions import (
    CapacityExceeded,
    OrderNotFound,
    RedemptionCodeExhausted,
    TransientStoreError,
)
from django_boxoffice.ticketing.models import Order, OrderLineItem, Ticket, TicketCategory
from django_boxoffice.ticketing.services.issuance import TicketIssuanceService
from django_boxoffice.ticketing.signals import order_paid

# -- Fixtures -----------------------------------------------------------------


@pytest.fixture
def gold(db):
    return TicketCategory.objects.create(
        code="gold",
        name="Gold",
        price=Decimal("450.00"),
        total_quantity=2,
        series_prefix="GOLD",
    )


@pytest.fixture
def general(db):
    return TicketCategory.objects.create(
        code="general",
        name="General",
        price=Decimal("100.00"),
        total_quantity=100,
    )


def _order(*lines, status=Order.Status.PENDING):
    total = sum((category.price * quantity for category, quantity in lines), Decimal("0.00"))
    order = Order.objects.create(
        customer_name="Ana Pop",
        customer_email="ana@example.com",
        total=total,
        status=status,
    )
    for category, quantity in lines:
        OrderLineItem.objects.create(order=order, category=category, quantity=quantity, unit_price=category.price)
    return order


# =============================================================================
# TestConfirmOrder
# =============================================================================


@pytest.mark.django_db
class TestConfirmOrder:
    def test_marks_order_paid_and_issues_tickets(self, general):
        order = _order((general, 3))

        result = TicketIssuanceService.confirm_order(order.pk)

        order.refresh_from_db()
        general.refresh_from_db()
        assert result.already_paid is False
        assert result.tickets_issued == 3
        assert result.order_id == order.pk
        assert order.status == Order.Status.PAID
        assert order.paid_at is not None
        assert general.sold_quantity == 3
        assert order.tickets.count() == 3
        assert set(order.tickets.values_list("status", flat=True)) == {Ticket.Status.VALID}

    def test_gold_scenario_labels_and_sold_count(self, gold):
        order = _order((gold, 2))

        TicketIssuanceService.confirm_order(order.pk)

        labels = list(order.tickets.order_by("sequence_number").values_list("display_label", flat=True))
        gold.refresh_from_db()
        assert labels == ["GOLD 1", "GOLD 2"]
        assert gold.sold_quantity == 2
        assert gold.is_sold_out

    def test_category_without_prefix_uses_default_series(self, general):
        order = _order((general, 1))

        TicketIssuanceService.confirm_order(order.pk)

        ticket = order.tickets.get()
        assert ticket.series_prefix == "GEN"
        assert ticket.display_label == "GEN 1"

    def test_sequence_continues_from_sold_count(self, general):
        general.sold_quantity = 10
        general.save(update_fields=["sold_quantity"])
        order = _order((general, 3))

        TicketIssuanceService.confirm_order(order.pk)

        numbers = list(order.tickets.order_by("sequence_number").values_list("sequence_number", flat=True))
        assert numbers == [11, 12, 13]

    def test_second_order_gets_next_contiguous_block(self, general):
        first = _order((general, 2))
        second = _order((general, 3))

        TicketIssuanceService.confirm_order(first.pk)
        TicketIssuanceService.confirm_order(second.pk)

        assert sorted(first.tickets.values_list("sequence_number", flat=True)) == [1, 2]
        assert sorted(second.tickets.values_list("sequence_number", flat=True)) == [3, 4, 5]

    def test_multi_category_order(self, gold, general):
        order = _order((gold, 1), (general, 2))

        result = TicketIssuanceService.confirm_order(order.pk)

        assert result.tickets_issued == 3
        assert order.tickets.filter(category=gold).count() == 1
        assert order.tickets.filter(category=general).count() == 2

    def test_repeated_lines_for_one_category_share_one_block(self, general):
        order = _order((general, 1), (general, 2))

        TicketIssuanceService.confirm_order(order.pk)

        general.refresh_from_db()
        assert general.sold_quantity == 3
        assert sorted(order.tickets.values_list("sequence_number", flat=True)) == [1, 2, 3]

    def test_confirm_is_idempotent(self, general):
        order = _order((general, 2))

        first = TicketIssuanceService.confirm_order(order.pk)
        second = TicketIssuanceService.confirm_order(order.pk)

        general.refresh_from_db()
        assert first.already_paid is False
        assert second.already_paid is True
        assert second.tickets_issued == 0
        assert general.sold_quantity == 2
        assert Ticket.objects.filter(order=order).count() == 2

    def test_accepts_string_id(self, general):
        order = _order((general, 1))

        result = TicketIssuanceService.confirm_order(str(order.pk))

        assert result.tickets_issued == 1

    def test_unknown_order_raises(self, db):
        with pytest.raises(OrderNotFound):
            TicketIssuanceService.confirm_order("00000000-0000-0000-0000-000000000000")

    def test_malformed_order_id_raises_not_found(self, db):
        with pytest.raises(OrderNotFound):
            TicketIssuanceService.confirm_order("not-a-uuid")

    def test_redemption_codes_are_unique_and_full_length(self, general):
        order = _order((general, 5))

        TicketIssuanceService.confirm_order(order.pk)

        codes = list(order.tickets.values_list("redemption_code", flat=True))
        assert len(set(codes)) == 5
        for code in codes:
            assert len(code.replace("-", "")) == 20

    def test_order_paid_signal_fires_on_commit(self, general, django_capture_on_commit_callbacks):
        received = []

        def handler(sender, order, tickets_issued, **kwargs):
            received.append((order.pk, tickets_issued))

        order_paid.connect(handler)
        try:
            order = _order((general, 2))
            with django_capture_on_commit_callbacks(execute=True):
                TicketIssuanceService.confirm_order(order.pk)
        finally:
            order_paid.disconnect(handler)

        assert received == [(order.pk, 2)]

    def test_no_signal_for_already_paid(self, general, django_capture_on_commit_callbacks):
        order = _order((general, 1))
        TicketIssuanceService.confirm_order(order.pk)

        with django_capture_on_commit_callbacks() as callbacks:
            TicketIssuanceService.confirm_order(order.pk)

        assert callbacks == []


# =============================================================================
# TestCapacity
# =============================================================================


@pytest.mark.django_db
class TestCapacity:
    def test_oversell_raises_and_rolls_back(self, gold):
        gold.sold_quantity = 1
        gold.save(update_fields=["sold_quantity"])
        order = _order((gold, 2))

        with pytest.raises(CapacityExceeded):
            TicketIssuanceService.confirm_order(order.pk)

        order.refresh_from_db()
        gold.refresh_from_db()
        assert order.status == Order.Status.PENDING
        assert order.paid_at is None
        assert gold.sold_quantity == 1
        assert not Ticket.objects.filter(order=order).exists()

    def test_failure_in_second_category_rolls_back_first(self, general, gold):
        gold.sold_quantity = 2
        gold.save(update_fields=["sold_quantity"])
        order = _order((general, 3), (gold, 1))

        with pytest.raises(CapacityExceeded):
            TicketIssuanceService.confirm_order(order.pk)

        general.refresh_from_db()
        assert general.sold_quantity == 0
        assert Ticket.objects.count() == 0
        assert Order.objects.get(pk=order.pk).status == Order.Status.PENDING

    def test_tickets_per_category_match_sold_count(self, gold, general):
        for lines in (((gold, 1), (general, 4)), ((general, 2),), ((gold, 1),)):
            TicketIssuanceService.confirm_order(_order(*lines).pk)

        for category in (gold, general):
            category.refresh_from_db()
            assert Ticket.objects.filter(category=category).count() == category.sold_quantity
            assert category.sold_quantity <= category.total_quantity


# =============================================================================
# TestRegenerateMissing
# =============================================================================


@pytest.mark.django_db
class TestRegenerateMissing:
    def test_reissues_deleted_tickets_for_paid_order(self, general):
        order = _order((general, 3))
        TicketIssuanceService.confirm_order(order.pk)
        order.tickets.order_by("-sequence_number").first().delete()

        result = TicketIssuanceService.confirm_order(order.pk, regenerate_missing=True)

        general.refresh_from_db()
        assert result.already_paid is True
        assert result.tickets_issued == 1
        assert order.tickets.count() == 3
        assert general.sold_quantity == 3
        assert general.sold_quantity == Ticket.objects.filter(category=general).count()
        assert sorted(order.tickets.values_list("display_label", flat=True)) == ["GEN 1", "GEN 2", "GEN 3"]

    def test_reissues_into_the_vacated_seat_not_a_new_one(self, general):
        first = _order((general, 2))
        second = _order((general, 2))
        TicketIssuanceService.confirm_order(first.pk)
        TicketIssuanceService.confirm_order(second.pk)
        first.tickets.get(sequence_number=2).delete()

        TicketIssuanceService.confirm_order(first.pk, regenerate_missing=True)

        general.refresh_from_db()
        assert general.sold_quantity == 4
        assert sorted(first.tickets.values_list("sequence_number", flat=True)) == [1, 2]
        assert Ticket.objects.filter(category=general).count() == 4

    def test_repair_works_on_sold_out_category(self, gold):
        order = _order((gold, 2))
        TicketIssuanceService.confirm_order(order.pk)
        order.tickets.get(sequence_number=1).delete()

        result = TicketIssuanceService.confirm_order(order.pk, regenerate_missing=True)

        gold.refresh_from_db()
        assert result.tickets_issued == 1
        assert gold.sold_quantity == 2
        assert sorted(order.tickets.values_list("display_label", flat=True)) == ["GOLD 1", "GOLD 2"]

    def test_repair_counts_seats_that_were_never_sold(self, general):
        order = _order((general, 2))
        TicketIssuanceService.confirm_order(order.pk)
        OrderLineItem.objects.create(order=order, category=general, quantity=1, unit_price=general.price)

        result = TicketIssuanceService.confirm_order(order.pk, regenerate_missing=True)

        general.refresh_from_db()
        assert result.tickets_issued == 1
        assert general.sold_quantity == 3
        assert general.sold_quantity == Ticket.objects.filter(category=general).count()

    def test_noop_when_nothing_is_missing(self, general):
        order = _order((general, 2))
        TicketIssuanceService.confirm_order(order.pk)

        result = TicketIssuanceService.confirm_order(order.pk, regenerate_missing=True)

        assert result.tickets_issued == 0
        general.refresh_from_db()
        assert general.sold_quantity == 2

    def test_flag_on_pending_order_behaves_like_normal_confirm(self, general):
        order = _order((general, 2))

        result = TicketIssuanceService.confirm_order(order.pk, regenerate_missing=True)

        assert result.already_paid is False
        assert result.tickets_issued == 2


# =============================================================================
# TestRegenerateAllTickets
# =============================================================================


@pytest.mark.django_db
class TestRegenerateAllTickets:
    def test_renumbers_paid_orders_from_one(self, gold, general):
        first = _order((general, 2))
        second = _order((gold, 1), (general, 1))
        pending = _order((general, 5))
        TicketIssuanceService.confirm_order(first.pk)
        TicketIssuanceService.confirm_order(second.pk)
        old_codes = set(Ticket.objects.values_list("redemption_code", flat=True))
        Ticket.objects.filter(order=first).first().delete()

        result = TicketIssuanceService.regenerate_all_tickets()

        general.refresh_from_db()
        gold.refresh_from_db()
        assert result.orders == 2
        assert result.tickets == 4
        assert general.sold_quantity == 3
        assert gold.sold_quantity == 1
        assert sorted(first.tickets.values_list("sequence_number", flat=True)) == [1, 2]
        assert list(second.tickets.filter(category=general).values_list("sequence_number", flat=True)) == [3]
        assert not pending.tickets.exists()
        assert old_codes.isdisjoint(Ticket.objects.values_list("redemption_code", flat=True))

    def test_empty_store(self, db):
        result = TicketIssuanceService.regenerate_all_tickets()

        assert result.orders == 0
        assert result.tickets == 0


# =============================================================================
# TestCodeCollisions
# =============================================================================


@pytest.mark.django_db
class TestCodeCollisions:
    def test_collision_draws_a_new_code(self, general):
        existing_order = _order((general, 1))
        TicketIssuanceService.confirm_order(existing_order.pk)
        taken = existing_order.tickets.get().redemption_code
        order = _order((general, 1))

        with patch(
            "django_boxoffice.ticketing.services.issuance.generate_redemption_code",
            side_effect=[taken, "FRESH-CODEA-BCDEF-GHJKL"],
        ):
            result = TicketIssuanceService.confirm_order(order.pk)

        assert result.tickets_issued == 1
        assert order.tickets.get().redemption_code == "FRESH-CODEA-BCDEF-GHJKL"
        assert order.tickets.get().sequence_number == 2

    def test_gives_up_after_configured_attempts(self, general):
        existing_order = _order((general, 1))
        TicketIssuanceService.confirm_order(existing_order.pk)
        taken = existing_order.tickets.get().redemption_code
        order = _order((general, 1))

        with (
            override_settings(BOXOFFICE={"redemption_code_attempts": 2}),
            patch(
                "django_boxoffice.ticketing.services.issuance.generate_redemption_code",
                return_value=taken,
            ),
            pytest.raises(RedemptionCodeExhausted),
        ):
            TicketIssuanceService.confirm_order(order.pk)

        order.refresh_from_db()
        assert order.status == Order.Status.PENDING
        assert not order.tickets.exists()


# =============================================================================
# TestTransientErrors
# =============================================================================


@pytest.mark.django_db
class TestTransientErrors:
    def test_operational_error_becomes_transient_and_rolls_back(self, general):
        order = _order((general, 2))

        with (
            patch(
                "django_boxoffice.ticketing.services.issuance._allocate",
                side_effect=OperationalError("canceling statement due to lock timeout"),
            ),
            pytest.raises(TransientStoreError),
        ):
            TicketIssuanceService.confirm_order(order.pk)

        order.refresh_from_db()
        assert order.status == Order.Status.PENDING
        assert not Ticket.objects.exists()

    def test_retry_after_transient_failure_succeeds(self, general):
        order = _order((general, 2))
        with (
            patch(
                "django_boxoffice.ticketing.services.issuance._allocate",
                side_effect=OperationalError("deadlock detected"),
            ),
            pytest.raises(TransientStoreError),
        ):
            TicketIssuanceService.confirm_order(order.pk)

        result = TicketIssuanceService.confirm_order(order.pk)

        assert result.already_paid is False
        assert result.tickets_issued == 2


# =============================================================================
# TestConcurrentConfirmation (PostgreSQL only)
# =============================================================================


def _run_in_threads(target, count):
    errors = []
    results = []
    barrier = threading.Barrier(count)

    def worker():
        try:
            barrier.wait()
            results.append(target())
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)
        finally:
            connection.close()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results, errors


@pytest.mark.postgres
@pytest.mark.django_db(transaction=True)
class TestConcurrentConfirmation:
    @pytest.fixture(autouse=True)
    def _require_row_locks(self, db):
        if not connection.features.has_select_for_update or connection.vendor != "postgresql":
            pytest.skip("Row-lock concurrency needs PostgreSQL")

    def test_parallel_confirms_of_one_order_issue_once(self, general):
        order = _order((general, 3))

        results, errors = _run_in_threads(lambda: TicketIssuanceService.confirm_order(order.pk), 4)

        general.refresh_from_db()
        assert errors == []
        assert sum(1 for r in results if not r.already_paid) == 1
        assert Ticket.objects.filter(order=order).count() == 3
        assert general.sold_quantity == 3

    def test_parallel_orders_get_disjoint_contiguous_blocks(self, general):
        orders = [_order((general, 2)) for _ in range(5)]
        pending = iter(orders)
        lock = threading.Lock()

        def confirm_next():
            with lock:
                order = next(pending)
            return TicketIssuanceService.confirm_order(order.pk)

        _results, errors = _run_in_threads(confirm_next, len(orders))

        general.refresh_from_db()
        assert errors == []
        assert general.sold_quantity == 10
        numbers = sorted(Ticket.objects.filter(category=general).values_list("sequence_number", flat=True))
        assert numbers == list(range(1, 11))
        for order in orders:
            seq = sorted(order.tickets.values_list("sequence_number", flat=True))
            assert seq[1] == seq[0] + 1

    def test_parallel_orders_never_oversell(self, gold):
        orders = [_order((gold, 1)) for _ in range(4)]
        pending = iter(orders)
        lock = threading.Lock()

        def confirm_next():
            with lock:
                order = next(pending)
            return TicketIssuanceService.confirm_order(order.pk)

        results, errors = _run_in_threads(confirm_next, len(orders))

        gold.refresh_from_db()
        assert len(results) == 2
        assert all(isinstance(exc, CapacityExceeded) for exc in errors)
        assert gold.sold_quantity == 2
        assert Ticket.objects.filter(category=gold).count() == 2
