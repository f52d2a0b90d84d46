from datetime import timedelta
from decimal import Decimal

import pytest

from bookings import cancellations, services
from bookings.finance import FinanceStats
from bookings.tests.factories import TODAY, booking_data, send_json, supplier_share

pytestmark = pytest.mark.django_db


def test_healthz(client):
    response = client.get("/healthz/")
    assert response.status_code == 200
    assert response.content == b"OK"


def test_dashboard_stats(admin_client, make_booking, internal_booking, admin_user):
    make_booking(ref_no="REF-2")
    services.create_pending_booking(booking_data(ref_no="PEND-1"), admin_user)

    response = admin_client.get("/api/dashboard/stats/")

    assert response.status_code == 200
    stats = response.json()["data"]
    assert stats["total_bookings"] == 2
    assert stats["pending_bookings"] == 1
    assert stats["confirmed"] == 2
    assert Decimal(stats["total_revenue"]) == Decimal("2000")
    assert Decimal(stats["outstanding_balance"]) == Decimal("800")


def test_recent_bookings(admin_client, make_booking, admin_user):
    make_booking()
    services.create_pending_booking(booking_data(ref_no="PEND-1"), admin_user)

    data = admin_client.get("/api/dashboard/recent/").json()["data"]

    assert [b["folder_no"] for b in data["bookings"]] == ["1"]
    assert [p["ref_no"] for p in data["pending_bookings"]] == ["PEND-1"]


def test_transactions_totals(admin_client, make_booking, admin_user):
    booking = make_booking(
        revenue="700", trans_fee="0",
        initial_payments=[
            {"amount": "700", "transaction_method": "LOYDS", "payment_date": TODAY.isoformat()}
        ],
    )
    cancellation = cancellations.cancel_booking(
        booking, {"supplier_cancellation_fee": "150", "admin_fee": "25"}, admin_user
    )
    cancellations.record_passenger_refund(
        cancellation,
        {"amount": "100", "transaction_method": "LOYDS", "refund_date": TODAY.isoformat()},
        admin_user,
    )

    response = admin_client.get("/api/transactions/")

    assert response.status_code == 200
    data = response.json()["data"]
    kinds = {row["type"] for row in data["transactions"]}
    assert kinds == {
        "Initial Payment",
        "Credit Note Received",
        "Admin Fee",
        "Initial Supplier Payment",
        "Passenger Refund",
    }
    # in: 700 + 350 credit + 25 admin fee; out: 500 supplier + 100 refund
    totals = data["totals"]
    assert Decimal(totals["incoming"]) == Decimal("1075")
    assert Decimal(totals["outgoing"]) == Decimal("600")
    assert Decimal(totals["net"]) == Decimal("475")


def test_transactions_period_filter(admin_client, make_booking):
    make_booking(
        initial_payments=[
            {
                "amount": "1000",
                "transaction_method": "LOYDS",
                "payment_date": (TODAY - timedelta(days=400)).isoformat(),
            }
        ]
    )

    data = admin_client.get("/api/transactions/?period=today").json()["data"]
    assert "Initial Payment" not in {row["type"] for row in data["transactions"]}

    bad = admin_client.get("/api/transactions/?period=custom&date_from=nope")
    assert bad.status_code == 400


def test_customer_deposits(admin_client, internal_booking, make_booking, admin_user):
    make_booking(ref_no="FULL-1")
    instalment = internal_booking.instalments.first()
    services.pay_instalment(
        instalment,
        {
            "amount": "400",
            "transaction_method": "STRIPE",
            "payment_date": TODAY.isoformat(),
            "status": "PAID",
        },
        admin_user,
    )

    response = admin_client.get("/api/customer-deposits/")

    [row] = response.json()["data"]
    assert row["id"] == internal_booking.pk
    assert Decimal(row["initial_deposit"]) == Decimal("200")
    assert Decimal(row["received"]) == Decimal("600")
    assert Decimal(row["balance"]) == Decimal("400")
    assert [entry["type"] for entry in row["payment_history"]] == [
        "Initial Deposit",
        f"Instalment Payment ({instalment.pk})",
    ]


def test_suppliers_info(admin_client, make_booking, admin_user):
    credit_share = supplier_share(supplier="Hilton", amount="200", method="CREDIT")
    make_booking(
        cost_items=[
            {"category": "Flight", "amount": "500", "suppliers": [supplier_share()]},
            {"category": "Hotel", "amount": "200", "suppliers": [credit_share]},
        ]
    )
    cancelled = make_booking(ref_no="REF-2")
    cancellations.cancel_booking(
        cancelled, {"supplier_cancellation_fee": "100"}, admin_user
    )

    summary = FinanceStats.suppliers_info()

    assert set(summary) == {"Emirates", "Hilton"}
    assert summary["Hilton"]["total_pending"] == Decimal("200.00")
    emirates = summary["Emirates"]
    assert emirates["total_amount"] == Decimal("1000.00")
    assert emirates["total_pending"] == Decimal("0.00")
    assert emirates["total_available_credit"] == Decimal("400.00")
    assert len(emirates["credit_notes"]) == 1

    response = admin_client.get("/api/suppliers-info/")
    assert response.status_code == 200
    hilton = response.json()["data"]["Hilton"]
    assert hilton["allocations"][0]["category"] == "Hotel"
    assert hilton["allocations"][0]["folder_no"] == "1"


def test_preview_financials(admin_client):
    response = send_json(
        admin_client,
        "/api/calculate/financials/",
        {"revenue": "1000", "prod_cost": "700", "trans_fee": "20", "received": "1200"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert Decimal(data["profit"]) == Decimal("280")
    assert Decimal(data["balance"]) == Decimal("-200")


def test_preview_instalment_plan(admin_client):
    response = send_json(
        admin_client,
        "/api/calculate/instalment-plan/",
        {"total": "800", "period": "within30days", "strategy": "weekly", "count": 4},
    )

    assert response.status_code == 200
    assert [Decimal(p["amount"]) for p in response.json()["data"]] == [
        Decimal("200")
    ] * 4

    response = send_json(
        admin_client,
        "/api/calculate/instalment-plan/",
        {"total": "800", "period": "within30days", "strategy": "weekly", "count": 5},
    )
    assert response.status_code == 400


def test_preview_interest(admin_client):
    response = send_json(
        admin_client,
        "/api/calculate/interest/",
        {"total_selling_price": "2000", "deposit_paid": "500", "repayment_months": 6},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert Decimal(data["interest"]) == Decimal("82.50")
    assert Decimal(data["revenue"]) == Decimal("2082.50")

    response = send_json(
        admin_client, "/api/calculate/interest/", {"total_selling_price": "2000"}
    )
    assert response.status_code == 400
