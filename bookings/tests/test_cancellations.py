from datetime import timedelta
from decimal import Decimal

import pytest

from bookings import cancellations, services
from bookings.cancellations import cancellation_outcome
from bookings.models import (
    Booking,
    Cancellation,
    CreditNote,
    CustomerPayable,
    PassengerRefundPayment,
    SupplierPayable,
)
from bookings.tests.factories import TODAY, booking_data, send_json

pytestmark = pytest.mark.django_db


def paid(amount):
    return [
        {"amount": amount, "transaction_method": "LOYDS", "payment_date": TODAY.isoformat()}
    ]


def refund(amount, method="LOYDS"):
    return {
        "amount": amount,
        "transaction_method": method,
        "refund_date": TODAY.isoformat(),
    }


@pytest.fixture
def paid_booking(make_booking):
    """Revenue 700, fully paid, 500 of Emirates flights."""
    return make_booking(revenue="700", trans_fee="0", initial_payments=paid("700"))


@pytest.fixture
def underpaid_booking(make_booking):
    """Revenue 1000 with only 100 received so far."""
    return make_booking(initial_payments=paid("100"))


def test_outcome_figures():
    outcome = cancellation_outcome(
        Decimal("500"), Decimal("700"), Decimal("150"), Decimal("0")
    )
    assert outcome == {
        "supplier_difference": Decimal("350"),
        "refund_to_passenger": Decimal("550"),
        "payable_by_customer": Decimal("0.00"),
        "credit_note_amount": Decimal("350"),
        "profit_or_loss": Decimal("-350"),
    }


def test_cancellation_issues_credit_note_and_refund(admin_client, paid_booking):
    response = send_json(
        admin_client,
        f"/api/bookings/{paid_booking.pk}/cancel/",
        {"supplier_cancellation_fee": "150"},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["folder_no"] == "1.C"
    assert Decimal(data["refund_to_passenger"]) == Decimal("550")
    assert Decimal(data["payable_by_customer"]) == Decimal("0")
    assert Decimal(data["credit_note_amount"]) == Decimal("350")
    assert Decimal(data["profit_or_loss"]) == Decimal("-350")
    assert data["refund_status"] == "PENDING"

    note = CreditNote.objects.get()
    assert note.supplier.name == "Emirates"
    assert note.initial_amount == Decimal("350.00")
    assert note.remaining_amount == Decimal("350.00")
    assert note.status == "AVAILABLE"
    assert not SupplierPayable.objects.exists()
    assert not CustomerPayable.objects.exists()

    paid_booking.refresh_from_db()
    assert paid_booking.booking_status == "CANCELLED"
    assert paid_booking.profit == Decimal("-350.00")
    assert paid_booking.balance == Decimal("-550.00")


def test_refunds_settle_the_cancellation(admin_client, paid_booking, admin_user):
    cancellation = cancellations.cancel_booking(
        paid_booking, {"supplier_cancellation_fee": "150"}, admin_user
    )
    url = f"/api/cancellations/{cancellation.pk}/refund/"

    response = send_json(admin_client, url, refund("200"))
    assert response.status_code == 201
    assert response.json()["data"]["refund_status"] == "PENDING"
    paid_booking.refresh_from_db()
    assert paid_booking.balance == Decimal("-350.00")

    response = send_json(admin_client, url, refund("350", "WISE"))
    data = response.json()["data"]
    assert data["refund_status"] == "PAID"
    assert data["refund_transaction_method"] == "WISE"
    assert len(data["refund_payments"]) == 2

    paid_booking.refresh_from_db()
    assert paid_booking.received == Decimal("150.00")
    assert paid_booking.balance == Decimal("0.00")
    assert paid_booking.profit == Decimal("-350.00")

    assert send_json(admin_client, url, refund("1")).status_code == 409


def test_refund_cannot_exceed_what_is_owed(admin_client, paid_booking, admin_user):
    cancellation = cancellations.cancel_booking(
        paid_booking, {"supplier_cancellation_fee": "150"}, admin_user
    )

    response = send_json(
        admin_client, f"/api/cancellations/{cancellation.pk}/refund/", refund("560")
    )

    assert response.status_code == 400
    assert not PassengerRefundPayment.objects.exists()


def test_refunds_cannot_use_credit_notes(admin_client, paid_booking, admin_user):
    cancellation = cancellations.cancel_booking(
        paid_booking, {"supplier_cancellation_fee": "150"}, admin_user
    )
    response = send_json(
        admin_client,
        f"/api/cancellations/{cancellation.pk}/refund/",
        refund("100", "CREDIT_NOTES"),
    )
    assert response.status_code == 400


def test_shortfalls_become_payables(underpaid_booking, admin_user):
    cancellation = cancellations.cancel_booking(
        underpaid_booking,
        {"supplier_cancellation_fee": "600", "admin_fee": "50"},
        admin_user,
    )

    assert cancellation.refund_to_passenger == Decimal("0.00")
    assert cancellation.refund_status == "N/A"
    assert cancellation.payable_by_customer == Decimal("550.00")
    assert cancellation.credit_note_amount == Decimal("0.00")
    assert cancellation.profit_or_loss == Decimal("150.00")
    assert not CreditNote.objects.exists()

    supplier_payable = SupplierPayable.objects.get()
    assert supplier_payable.supplier.name == "Emirates"
    assert supplier_payable.pending_amount == Decimal("100.00")

    customer_payable = CustomerPayable.objects.get()
    assert customer_payable.booking == underpaid_booking
    assert customer_payable.pending_amount == Decimal("550.00")

    underpaid_booking.refresh_from_db()
    assert underpaid_booking.balance == Decimal("550.00")


def test_settling_payables(admin_client, underpaid_booking, admin_user):
    cancellations.cancel_booking(
        underpaid_booking,
        {"supplier_cancellation_fee": "600", "admin_fee": "50"},
        admin_user,
    )
    customer_payable = CustomerPayable.objects.get()
    supplier_payable = SupplierPayable.objects.get()

    response = send_json(
        admin_client,
        f"/api/customer-payables/{customer_payable.pk}/settle/",
        {"amount": "550", "transaction_method": "STRIPE", "payment_date": TODAY.isoformat()},
    )
    assert response.status_code == 201
    assert response.json()["data"]["status"] == "PAID"
    assert response.json()["data"]["originating_folder_no"] == "1"

    underpaid_booking.refresh_from_db()
    assert underpaid_booking.received == Decimal("650.00")
    assert underpaid_booking.balance == Decimal("0.00")

    settle = {
        "payable_id": supplier_payable.pk,
        "amount": "100",
        "transaction_method": "LOYDS",
        "settlement_date": TODAY.isoformat(),
    }
    over = dict(settle, amount="100.50")
    assert (
        send_json(admin_client, "/api/supplier-payables/settle/", over).status_code
        == 400
    )
    response = send_json(admin_client, "/api/supplier-payables/settle/", settle)
    assert response.status_code == 201
    assert response.json()["data"]["status"] == "PAID"

    response = send_json(admin_client, "/api/supplier-payables/settle/", settle)
    assert response.status_code == 409


def test_chain_is_cancelled_once(admin_client, paid_booking, admin_user):
    cancellations.cancel_booking(
        paid_booking, {"supplier_cancellation_fee": "150"}, admin_user
    )

    response = send_json(
        admin_client,
        f"/api/bookings/{paid_booking.pk}/cancel/",
        {"supplier_cancellation_fee": "10"},
    )

    assert response.status_code == 409
    assert Cancellation.objects.count() == 1


def test_cancelled_chain_is_frozen(admin_client, paid_booking, admin_user):
    cancellations.cancel_booking(
        paid_booking, {"supplier_cancellation_fee": "150"}, admin_user
    )
    url = f"/api/bookings/{paid_booking.pk}"

    payload = booking_data(
        travel_date=(TODAY + timedelta(days=90)).isoformat(), initial_payments=[]
    )
    assert send_json(admin_client, f"{url}/date-change/", payload).status_code == 409
    assert (
        send_json(admin_client, f"{url}/", {"revenue": "1"}, method="put").status_code
        == 409
    )
    assert (
        send_json(admin_client, f"{url}/void/", {"reason": "oops"}).status_code == 409
    )
    allocation = paid_booking.cost_items.get().suppliers.get()
    response = send_json(
        admin_client,
        "/api/suppliers/settlements/",
        {
            "cost_item_supplier_id": allocation.pk,
            "amount": "10",
            "transaction_method": "LOYDS",
            "settlement_date": TODAY.isoformat(),
        },
    )
    assert response.status_code == 409


def test_cancelling_a_date_change_cancels_the_whole_chain(make_booking, admin_user):
    root = make_booking(revenue="700", trans_fee="0", initial_payments=paid("700"))
    change = services.create_date_change(
        root,
        booking_data(
            revenue="100",
            trans_fee="0",
            travel_date=(TODAY + timedelta(days=90)).isoformat(),
            initial_payments=[],
            cost_items=[
                {
                    "category": "Change fee",
                    "amount": "80",
                    "suppliers": [
                        {
                            "supplier": "Emirates",
                            "amount": "80",
                            "payment_method": "BANK_TRANSFER",
                        }
                    ],
                }
            ],
        ),
        admin_user,
    )

    cancellation = cancellations.cancel_booking(
        change, {"supplier_cancellation_fee": "150"}, admin_user
    )

    assert cancellation.folder_no == "1.C"
    assert cancellation.original_booking == root
    # chain prod cost 580, received 700
    assert cancellation.credit_note_amount == Decimal("430.00")
    assert cancellation.refund_to_passenger == Decimal("550.00")
    assert set(
        Booking.objects.chain("1").values_list("booking_status", flat=True)
    ) == {"CANCELLED"}
