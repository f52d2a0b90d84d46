from decimal import Decimal

import pytest

from bookings import cancellations, services
from bookings.models import (
    Booking,
    CreditNote,
    PendingBooking,
    Supplier,
    SupplierPayable,
)
from bookings.tests.factories import booking_data


@pytest.mark.django_db
def test_approve_action_confirms_the_queue(admin_client, admin_user):
    # 1. Two bookings waiting for approval
    first = services.create_pending_booking(booking_data(ref_no="Q-1"), admin_user)
    second = services.create_pending_booking(booking_data(ref_no="Q-2"), admin_user)

    # 2. Approve both from the changelist
    response = admin_client.post(
        "/admin/bookings/pendingbooking/",
        {"action": "approve_selected", "_selected_action": [first.pk, second.pk]},
    )

    # 3. Verify
    assert response.status_code == 302
    assert set(PendingBooking.objects.values_list("status", flat=True)) == {"APPROVED"}
    assert sorted(Booking.objects.values_list("folder_no", flat=True)) == ["1", "2"]


@pytest.mark.django_db
def test_recalculate_action_repairs_totals(admin_client, make_booking):
    booking = make_booking()
    Booking.objects.filter(pk=booking.pk).update(profit=Decimal("0"), balance=Decimal("9"))

    response = admin_client.post(
        "/admin/bookings/booking/",
        {"action": "recalculate_totals", "_selected_action": [booking.pk]},
    )

    assert response.status_code == 302
    booking.refresh_from_db()
    assert booking.profit == Decimal("480.00")
    assert booking.balance == Decimal("0.00")


@pytest.mark.django_db
def test_credit_notes_cannot_be_added_or_resized(admin_client, make_booking, admin_user):
    emirates = make_booking()
    cancellations.cancel_booking(emirates, {"supplier_cancellation_fee": "100"}, admin_user)
    note = CreditNote.objects.get()

    response = admin_client.post(
        "/admin/bookings/creditnote/add/",
        {"supplier": note.supplier_id, "initial_amount": "100.00"},
    )
    assert response.status_code == 403
    assert CreditNote.objects.count() == 1

    response = admin_client.post(
        f"/admin/bookings/creditnote/{note.pk}/change/",
        {"supplier": note.supplier_id, "initial_amount": "999.00"},
    )
    assert response.status_code == 302
    note.refresh_from_db()
    assert note.initial_amount == Decimal("400.00")
    assert note.remaining_amount == Decimal("400.00")


@pytest.mark.django_db
def test_allocation_split_is_read_only(admin_client, make_booking):
    booking = make_booking()
    allocation = booking.cost_items.get().suppliers.get()

    response = admin_client.post(
        f"/admin/bookings/costitemsupplier/{allocation.pk}/change/",
        {
            "payment_method": "BANK_TRANSFER_AND_CREDIT",
            "amount": "1.00",
            "transaction_method": "WISE",
        },
    )

    assert response.status_code == 302
    allocation.refresh_from_db()
    assert allocation.payment_method == "BANK_TRANSFER"
    assert allocation.amount == Decimal("500.00")
    assert allocation.pending_amount == Decimal("0.00")
    assert allocation.transaction_method == "WISE"


@pytest.mark.django_db
def test_payable_total_is_read_only(admin_client):
    payable = SupplierPayable.objects.create(
        supplier=Supplier.objects.create(name="Hilton"),
        total_amount=Decimal("100.00"),
        pending_amount=Decimal("100.00"),
        reason="Cancellation fee above amount paid",
    )

    response = admin_client.post(
        f"/admin/bookings/supplierpayable/{payable.pk}/change/",
        {"total_amount": "500.00", "reason": "Checked with supplier"},
    )

    assert response.status_code == 302
    payable.refresh_from_db()
    assert payable.total_amount == Decimal("100.00")
    assert payable.pending_amount == Decimal("100.00")
    assert payable.reason == "Checked with supplier"
    assert admin_client.get("/admin/bookings/supplierpayable/add/").status_code == 403
