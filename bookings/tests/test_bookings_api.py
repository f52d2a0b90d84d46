from datetime import timedelta
from decimal import Decimal

import pytest

from bookings import services
from bookings.models import Booking, PendingBooking
from bookings.tests.factories import (
    TODAY,
    booking_data,
    internal_booking_data,
    send_json,
)

pytestmark = pytest.mark.django_db


# --- CREATE ---
def test_create_booking_derives_totals(admin_client):
    response = send_json(admin_client, "/api/bookings/", booking_data())

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["folder_no"] == "1"
    assert data["booking_status"] == "CONFIRMED"
    assert Decimal(data["prod_cost"]) == Decimal("500")
    assert Decimal(data["received"]) == Decimal("1000")
    assert Decimal(data["profit"]) == Decimal("480")
    assert Decimal(data["balance"]) == Decimal("0")

    allocation = data["cost_items"][0]["suppliers"][0]
    assert allocation["supplier"] == "Emirates"
    assert Decimal(allocation["paid_amount"]) == Decimal("500")
    assert Decimal(allocation["pending_amount"]) == Decimal("0")


def test_folder_numbers_increase(make_booking):
    first = make_booking()
    second = make_booking(ref_no="REF-1002")
    assert (first.folder_no, second.folder_no) == ("1", "2")


def test_client_prod_cost_must_match_breakdown(admin_client):
    response = send_json(admin_client, "/api/bookings/", booking_data(prod_cost="450"))

    assert response.status_code == 400
    assert "production cost" in response.json()["message"]
    assert not Booking.objects.exists()


def test_create_requires_an_initial_payment(admin_client):
    response = send_json(
        admin_client, "/api/bookings/", booking_data(initial_payments=[])
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "At least one initial payment must be provided."


def test_nested_errors_are_keyed_by_position(admin_client):
    payload = booking_data()
    payload["passengers"][0]["gender"] = "UNKNOWN"

    response = send_json(admin_client, "/api/bookings/", payload)

    assert response.status_code == 400
    assert "passengers[0].gender" in response.json()["errors"]


def test_cancellation_type_cannot_be_created(admin_client):
    response = send_json(
        admin_client, "/api/bookings/", booking_data(booking_type="CANCELLATION")
    )

    assert response.status_code == 400
    assert "booking_type" in response.json()["errors"]


def test_travel_date_cannot_precede_pc_date(admin_client):
    payload = booking_data(travel_date=(TODAY - timedelta(days=1)).isoformat())
    response = send_json(admin_client, "/api/bookings/", payload)
    assert response.status_code == 400


def test_invalid_json_body(admin_client):
    response = admin_client.post(
        "/api/bookings/", data="{not json", content_type="application/json"
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Request body is not valid JSON."


def test_internal_booking_carries_its_instalments(admin_client):
    response = send_json(admin_client, "/api/bookings/", internal_booking_data())

    assert response.status_code == 201
    data = response.json()["data"]
    assert Decimal(data["balance"]) == Decimal("800")
    assert [Decimal(i["amount"]) for i in data["instalments"]] == [
        Decimal("400"),
        Decimal("400"),
    ]
    assert {i["status"] for i in data["instalments"]} == {"PENDING"}


@pytest.mark.parametrize(
    "overrides",
    [
        {"instalments": []},
        {
            "instalments": [
                {"due_date": (TODAY + timedelta(days=7)).isoformat(), "amount": "700"}
            ]
        },
    ],
)
def test_internal_booking_instalments_must_cover_balance(admin_client, overrides):
    response = send_json(
        admin_client, "/api/bookings/", internal_booking_data(**overrides)
    )
    assert response.status_code == 400
    assert not Booking.objects.exists()


def test_full_booking_cannot_carry_instalments(admin_client):
    payload = booking_data(
        instalments=[
            {"due_date": (TODAY + timedelta(days=7)).isoformat(), "amount": "100"}
        ]
    )
    response = send_json(admin_client, "/api/bookings/", payload)
    assert response.status_code == 400


def test_agents_cannot_create_confirmed_bookings(agent_client):
    response = send_json(agent_client, "/api/bookings/", booking_data())
    assert response.status_code == 403
    assert not Booking.objects.exists()


def test_anonymous_users_are_redirected(client):
    response = client.get("/api/bookings/")
    assert response.status_code == 302


def test_missing_booking_is_404(admin_client):
    response = admin_client.get("/api/bookings/999/")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_list_filters_by_status(admin_client, make_booking, admin_user):
    make_booking()
    voided = make_booking(ref_no="REF-2")
    services.void_booking(voided, {"reason": "Duplicate"}, admin_user)

    response = admin_client.get("/api/bookings/?status=VOID")

    assert [b["ref_no"] for b in response.json()["data"]] == ["REF-2"]


# --- PENDING QUEUE ---
def test_pending_booking_approval(agent_client, admin_client):
    response = send_json(agent_client, "/api/pending-bookings/", booking_data())
    assert response.status_code == 201
    pending = response.json()["data"]
    assert pending["status"] == "PENDING"
    assert Decimal(pending["profit"]) == Decimal("480")

    response = send_json(
        admin_client, f"/api/pending-bookings/{pending['id']}/approve/"
    )
    assert response.status_code == 200
    booking = response.json()["data"]
    assert booking["folder_no"] == "1"
    assert booking["booking_status"] == "CONFIRMED"
    assert len(booking["initial_payments"]) == 1
    assert len(booking["cost_items"]) == 1
    assert len(booking["passengers"]) == 1
    assert Decimal(booking["received"]) == Decimal("1000")

    record = PendingBooking.objects.get(pk=pending["id"])
    assert record.status == "APPROVED"
    assert record.approved_booking_id == booking["id"]
    assert not record.initial_payments.exists()


def test_pending_booking_cannot_be_approved_twice(admin_client, admin_user):
    pending = services.create_pending_booking(booking_data(), admin_user)
    url = f"/api/pending-bookings/{pending.pk}/approve/"

    assert send_json(admin_client, url).status_code == 200
    response = send_json(admin_client, url)

    assert response.status_code == 409
    assert Booking.objects.count() == 1


def test_rejected_booking_cannot_be_approved(admin_client, admin_user):
    pending = services.create_pending_booking(booking_data(), admin_user)

    response = send_json(admin_client, f"/api/pending-bookings/{pending.pk}/reject/")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "REJECTED"

    response = send_json(admin_client, f"/api/pending-bookings/{pending.pk}/approve/")
    assert response.status_code == 409
    assert not Booking.objects.exists()


def test_agents_cannot_approve(agent_client, admin_user):
    pending = services.create_pending_booking(booking_data(), admin_user)
    response = send_json(agent_client, f"/api/pending-bookings/{pending.pk}/approve/")
    assert response.status_code == 403


def test_agents_only_see_their_own_pending_bookings(agent_client, agent, admin_user):
    services.create_pending_booking(booking_data(ref_no="ADMIN-1"), admin_user)
    services.create_pending_booking(booking_data(ref_no="AGENT-1"), agent)

    response = agent_client.get("/api/pending-bookings/")

    assert [p["ref_no"] for p in response.json()["data"]] == ["AGENT-1"]


def test_agents_cannot_open_another_agents_pending_booking(agent_client, agent, admin_user):
    other = services.create_pending_booking(booking_data(ref_no="ADMIN-1"), admin_user)
    own = services.create_pending_booking(booking_data(ref_no="AGENT-1"), agent)

    assert agent_client.get(f"/api/pending-bookings/{other.pk}/").status_code == 404
    response = send_json(
        agent_client,
        f"/api/pending-bookings/{other.pk}/",
        booking_data(ref_no="TAKEN"),
        method="put",
    )
    assert response.status_code == 404
    other.refresh_from_db()
    assert other.ref_no == "ADMIN-1"

    assert agent_client.get(f"/api/pending-bookings/{own.pk}/").status_code == 200


def test_update_pending_booking_replaces_rows(admin_client, admin_user):
    pending = services.create_pending_booking(booking_data(), admin_user)
    payload = booking_data(
        revenue="1200",
        initial_payments=[
            {"amount": "300", "transaction_method": "WISE", "payment_date": TODAY.isoformat()}
        ],
    )

    response = send_json(
        admin_client, f"/api/pending-bookings/{pending.pk}/", payload, method="put"
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["initial_payments"]) == 1
    assert Decimal(data["received"]) == Decimal("300")
    assert Decimal(data["balance"]) == Decimal("900")
    assert Decimal(data["profit"]) == Decimal("680")


# --- UPDATE, DATE CHANGE, VOID ---
def test_update_booking_recomputes_profit(admin_client, make_booking):
    booking = make_booking()

    response = send_json(
        admin_client, f"/api/bookings/{booking.pk}/", {"revenue": "1200"}, method="put"
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert Decimal(data["profit"]) == Decimal("680")
    assert Decimal(data["balance"]) == Decimal("200")
    assert data["pax_name"] == "Ali Hassan"


def test_date_change_continues_the_folder(admin_client, make_booking):
    root = make_booking()
    payload = booking_data(
        travel_date=(TODAY + timedelta(days=90)).isoformat(),
        revenue="1100",
        initial_payments=[],
    )

    response = send_json(admin_client, f"/api/bookings/{root.pk}/date-change/", payload)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["folder_no"] == "1.1"
    assert data["booking_type"] == "DATE_CHANGE"
    assert data["original_booking_id"] == root.pk
    root.refresh_from_db()
    assert root.booking_status == "COMPLETED"

    second = services.create_date_change(
        Booking.objects.get(folder_no="1.1"), payload
    )
    assert second.folder_no == "1.2"
    assert Booking.objects.get(folder_no="1.1").booking_status == "COMPLETED"


def test_date_change_requires_travel_date(admin_client, make_booking):
    root = make_booking()
    payload = booking_data(initial_payments=[])
    payload.pop("travel_date")

    response = send_json(admin_client, f"/api/bookings/{root.pk}/date-change/", payload)

    assert response.status_code == 400
    assert "travel_date" in response.json()["errors"]


def test_void_and_restore(admin_client, make_booking):
    booking = make_booking()
    url = f"/api/bookings/{booking.pk}"

    response = send_json(admin_client, f"{url}/void/", {"reason": "Duplicate entry"})
    assert response.status_code == 200
    assert response.json()["data"]["booking_status"] == "VOID"

    assert send_json(admin_client, f"{url}/void/", {"reason": "again"}).status_code == 409
    assert (
        send_json(admin_client, f"{url}/", {"revenue": "5"}, method="put").status_code
        == 409
    )

    response = send_json(admin_client, f"{url}/unvoid/")
    assert response.status_code == 200
    assert response.json()["data"]["booking_status"] == "CONFIRMED"
    assert send_json(admin_client, f"{url}/unvoid/").status_code == 409


def test_void_requires_a_reason(admin_client, make_booking):
    booking = make_booking()
    response = send_json(admin_client, f"/api/bookings/{booking.pk}/void/", {"reason": "  "})
    assert response.status_code == 400


def test_agents_cannot_void(agent_client, make_booking):
    booking = make_booking()
    response = send_json(
        agent_client, f"/api/bookings/{booking.pk}/void/", {"reason": "Duplicate"}
    )
    assert response.status_code == 403


def test_booking_changes_are_tracked(make_booking, admin_user):
    booking = make_booking()
    services.update_booking(booking, {"pnr": "ZZ99ZZ"}, admin_user)
    assert booking.history.count() >= 2
    assert booking.history.first().pnr == "ZZ99ZZ"
