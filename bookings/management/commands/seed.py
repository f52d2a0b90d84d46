# bookings/management/commands/seed.py
import logging
import os
import secrets
from datetime import date, timedelta

from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand
from django.db import transaction

from bookings import cancellations, services
from bookings.models import Booking, Supplier

logger = logging.getLogger(__name__)


def get_user():
    from django.contrib.auth import get_user_model

    return get_user_model()


def sample_booking(ref_no, revenue, deposit, supplier, cost, payment_method="FULL"):
    today = date.today()
    data = {
        "ref_no": ref_no,
        "pax_name": "Ali Hassan",
        "agent_name": "Sara",
        "team_name": "PH",
        "pnr": ref_no[-6:],
        "airline": "EK",
        "from_to": "LHR-DXB",
        "booking_type": "FRESH",
        "payment_method": payment_method,
        "pc_date": today.isoformat(),
        "travel_date": (today + timedelta(days=60)).isoformat(),
        "num_pax": 1,
        "revenue": str(revenue),
        "trans_fee": "0",
        "surcharge": "0",
        "initial_payments": [
            {
                "amount": str(deposit),
                "transaction_method": "LOYDS",
                "payment_date": today.isoformat(),
            }
        ],
        "cost_items": [
            {
                "category": "Flight",
                "amount": str(cost),
                "suppliers": [
                    {
                        "supplier": supplier,
                        "amount": str(cost),
                        "payment_method": "BANK_TRANSFER",
                        "transaction_method": "LOYDS",
                    }
                ],
            }
        ],
        "passengers": [
            {
                "title": "MR",
                "first_name": "Ali",
                "last_name": "Hassan",
                "gender": "MALE",
                "category": "ADULT",
            }
        ],
    }
    if payment_method == "INTERNAL":
        balance = revenue - deposit
        data["instalments"] = [
            {
                "due_date": (today + timedelta(days=7 * i)).isoformat(),
                "amount": str(balance / 2),
            }
            for i in (1, 2)
        ]
    return data


class Command(BaseCommand):
    help = "Seeds the database with demo suppliers, bookings and a credit note."

    def handle(self, *args, **options):
        self.stdout.write("Starting database seeding...")

        # 1. Create Superuser (Admin) and the Managers group
        User = get_user()
        user, created = User.objects.get_or_create(
            username="admin",
            defaults={
                "email": "admin@example.com",
                "is_staff": True,
                "is_superuser": True,
            },
        )
        if created:
            password = os.environ.get("SEED_ADMIN_PASSWORD", secrets.token_urlsafe(16))
            user.set_password(password)
            user.save()
            self.stdout.write(
                self.style.SUCCESS(f'Superuser "admin" created. Password: {password}')
            )
            self.stdout.write(
                self.style.WARNING("⚠️  Save this password now! It won't be shown again.")
            )
        else:
            self.stdout.write('Superuser "admin" already exists.')
        Group.objects.get_or_create(name="Managers")

        if Booking.objects.exists():
            self.stdout.write("Bookings already present, skipping demo data.")
            return

        # 2. Suppliers
        Supplier.objects.get_or_create(name="Emirates", defaults={"contact": "agency@emirates.com"})
        Supplier.objects.get_or_create(name="Hilton", defaults={"contact": "groups@hilton.com"})

        with transaction.atomic():
            # 3. A paid-in-full booking, through the approval queue
            pending = services.create_pending_booking(
                sample_booking("DEMO-0001", 1200, 1200, "Emirates", 900), user
            )
            services.approve_pending_booking(pending, user)

            # 4. An instalment booking
            services.create_booking(
                sample_booking("DEMO-0002", 1000, 200, "Hilton", 650, "INTERNAL"), user
            )

            # 5. A cancelled booking leaving a credit note with Emirates
            cancelled = services.create_booking(
                sample_booking("DEMO-0003", 700, 700, "Emirates", 500), user
            )
            cancellation = cancellations.cancel_booking(
                cancelled,
                {"supplier_cancellation_fee": "150", "admin_fee": "25"},
                user,
            )

        logger.info("Seeded demo data (cancellation %s)", cancellation.folder_no)
        self.stdout.write(
            self.style.SUCCESS("Database seeding complete. Go to http://localhost:8000/admin")
        )
