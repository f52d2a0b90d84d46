import pytest

from bookings import services
from bookings.tests.factories import booking_data, internal_booking_data


@pytest.fixture
def make_booking(admin_user):
    def _make(**overrides):
        return services.create_booking(booking_data(**overrides), admin_user)

    return _make


@pytest.fixture
def internal_booking(admin_user):
    return services.create_booking(internal_booking_data(), admin_user)


@pytest.fixture
def agent(django_user_model):
    return django_user_model.objects.create_user(
        username="agent", password="agent-pass-123", is_staff=True
    )


@pytest.fixture
def agent_client(client, agent):
    client.force_login(agent)
    return client
