from decimal import Decimal

import pytest

from bookings import cancellations, services
from bookings.models import Booking, CreditNote, CreditNoteUsage
from bookings.tests.factories import TODAY, booking_data, send_json, supplier_share

pytestmark = pytest.mark.django_db


@pytest.fixture
def credit_note(make_booking, admin_user):
    """350 of Emirates credit from a cancelled 700/500 booking."""
    booking = make_booking(
        ref_no="OLD-1",
        revenue="700",
        trans_fee="0",
        initial_payments=[
            {"amount": "700", "transaction_method": "LOYDS", "payment_date": TODAY.isoformat()}
        ],
    )
    cancellations.cancel_booking(booking, {"supplier_cancellation_fee": "150"}, admin_user)
    return CreditNote.objects.get()


def paid_with_notes(amount, selections, supplier="Emirates", **extra):
    share = supplier_share(
        supplier=supplier,
        amount=amount,
        method=extra.pop("method", "CREDIT_NOTES"),
        selected_credit_notes=selections,
        **extra,
    )
    return booking_data(
        ref_no="NEW-1",
        cost_items=[{"category": "Flight", "amount": amount, "suppliers": [share]}],
    )


def use(note, amount):
    return [{"id": note.pk, "amount_to_use": amount}]


def test_booking_spends_a_credit_note(admin_client, credit_note):
    response = send_json(
        admin_client, "/api/bookings/", paid_with_notes("300", use(credit_note, "300"))
    )

    assert response.status_code == 201
    allocation = response.json()["data"]["cost_items"][0]["suppliers"][0]
    assert Decimal(allocation["paid_amount"]) == Decimal("300")
    assert Decimal(allocation["credit_notes_used"]) == Decimal("300")

    credit_note.refresh_from_db()
    assert credit_note.remaining_amount == Decimal("50.00")
    assert credit_note.status == "PARTIALLY_USED"

    services.create_booking(paid_with_notes("50", use(credit_note, "50")))
    credit_note.refresh_from_db()
    assert credit_note.remaining_amount == Decimal("0.00")
    assert credit_note.status == "USED"

    response = admin_client.get("/api/credit-notes/available/Emirates/")
    assert response.json()["data"] == []


def test_combined_method_covers_only_its_credit_note_part(credit_note):
    booking = services.create_booking(
        paid_with_notes(
            "300",
            use(credit_note, "200"),
            method="BANK_TRANSFER_AND_CREDIT_NOTES",
            first_method_amount="100",
            second_method_amount="200",
        )
    )

    allocation = booking.cost_items.get().suppliers.get()
    assert allocation.paid_amount == Decimal("300.00")
    assert allocation.pending_amount == Decimal("0.00")
    credit_note.refresh_from_db()
    assert credit_note.remaining_amount == Decimal("150.00")


def test_overdrawing_a_credit_note_writes_nothing(admin_client, credit_note):
    response = send_json(
        admin_client, "/api/bookings/", paid_with_notes("400", use(credit_note, "400"))
    )

    assert response.status_code == 400
    assert not Booking.objects.filter(ref_no="NEW-1").exists()
    assert not CreditNoteUsage.objects.exists()
    credit_note.refresh_from_db()
    assert credit_note.remaining_amount == Decimal("350.00")
    assert credit_note.status == "AVAILABLE"


def test_uses_of_one_note_are_summed_across_the_request(admin_client, credit_note):
    payload = booking_data(
        ref_no="NEW-1",
        cost_items=[
            {
                "category": category,
                "amount": "200",
                "suppliers": [
                    supplier_share(
                        amount="200",
                        method="CREDIT_NOTES",
                        selected_credit_notes=use(credit_note, "200"),
                    )
                ],
            }
            for category in ("Flight", "Hotel")
        ],
    )

    response = send_json(admin_client, "/api/bookings/", payload)

    assert response.status_code == 400
    assert not CreditNoteUsage.objects.exists()


def test_credit_note_belongs_to_its_supplier(admin_client, credit_note):
    response = send_json(
        admin_client,
        "/api/bookings/",
        paid_with_notes("300", use(credit_note, "300"), supplier="Hilton"),
    )
    assert response.status_code == 400
    assert "belongs to Emirates" in response.json()["message"]


def test_unknown_credit_note_is_404(admin_client, credit_note):
    response = send_json(
        admin_client,
        "/api/bookings/",
        paid_with_notes("300", [{"id": 999, "amount_to_use": "300"}]),
    )
    assert response.status_code == 404


def test_selected_notes_must_cover_the_share(admin_client, credit_note):
    response = send_json(
        admin_client, "/api/bookings/", paid_with_notes("300", use(credit_note, "250"))
    )
    assert response.status_code == 400
    assert not CreditNoteUsage.objects.exists()


def test_rejecting_a_pending_booking_releases_its_credit(credit_note, admin_user):
    pending = services.create_pending_booking(
        paid_with_notes("300", use(credit_note, "300")), admin_user
    )
    credit_note.refresh_from_db()
    assert credit_note.remaining_amount == Decimal("50.00")

    services.reject_pending_booking(pending, admin_user)

    credit_note.refresh_from_db()
    assert credit_note.remaining_amount == Decimal("350.00")
    assert credit_note.status == "AVAILABLE"


def test_approval_keeps_the_usage(credit_note, admin_user):
    pending = services.create_pending_booking(
        paid_with_notes("300", use(credit_note, "300")), admin_user
    )
    booking = services.approve_pending_booking(pending, admin_user)

    usage = CreditNoteUsage.objects.get()
    assert usage.used_on.cost_item.booking == booking
    credit_note.refresh_from_db()
    assert credit_note.remaining_amount == Decimal("50.00")


def test_available_notes_listing(admin_client, credit_note):
    response = admin_client.get("/api/credit-notes/available/Emirates/")

    assert response.status_code == 200
    [note] = response.json()["data"]
    assert note["id"] == credit_note.pk
    assert note["supplier"] == "Emirates"
    assert note["generated_from_ref_no"] == "OLD-1"
    assert Decimal(note["remaining_amount"]) == Decimal("350")

    assert admin_client.get("/api/credit-notes/available/Hilton/").json()["data"] == []
