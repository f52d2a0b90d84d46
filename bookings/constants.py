# bookings/constants.py
from decimal import Decimal

# Money
CENT = Decimal("0.01")
ZERO = Decimal("0.00")
TOLERANCE = Decimal("0.01")  # sum checks accept one cent of drift

# Instalment plans
ANNUAL_INTEREST_RATE = Decimal("0.11")  # fixed for beyond-30 plans
WITHIN_30_HORIZON_DAYS = 30
WEEKLY_WITHIN_30_MAX = 4
WEEKLY_INTERVAL_DAYS = 7
MONTHLY_INTERVAL_DAYS = 30

PLAN_PERIODS = [
    ("within30days", "Within 30 Days"),
    ("beyond30", "Beyond 30 Days"),
]

PLAN_STRATEGIES = [
    ("weekly", "Weekly"),
    ("monthly", "Monthly"),
    ("custom", "Custom"),
]

# Booking classification
BOOKING_TYPES = [
    ("FRESH", "Fresh"),
    ("DATE_CHANGE", "Date Change"),
    ("CANCELLATION", "Cancellation"),
]

# How the customer pays for the booking
BOOKING_PAYMENT_METHODS = [
    ("FULL", "Full"),
    ("INTERNAL", "Internal (Instalments)"),
    ("REFUND", "Refund"),
    ("HUMM", "Humm"),
    ("FULL_HUMM", "Full + Humm"),
    ("INTERNAL_HUMM", "Internal + Humm"),
]
INSTALMENT_PAYMENT_METHODS = ("INTERNAL", "INTERNAL_HUMM")

BOOKING_STATUSES = [
    ("PENDING", "⏳ Pending"),
    ("CONFIRMED", "✅ Confirmed"),
    ("COMPLETED", "🏁 Completed"),
    ("CANCELLED", "🚫 Cancelled"),
    ("VOID", "🗑️ Void"),
]

PENDING_BOOKING_STATUSES = [
    ("PENDING", "⏳ Awaiting Approval"),
    ("APPROVED", "✅ Approved"),
    ("REJECTED", "❌ Rejected"),
]

INSTALMENT_STATUSES = [
    ("PENDING", "Pending"),
    ("PAID", "Paid"),
    ("OVERDUE", "Overdue"),
    ("SETTLEMENT", "Settlement"),
]

# Money movement channels
TRANSACTION_METHODS = [
    ("LOYDS", "Lloyds"),
    ("STRIPE", "Stripe"),
    ("WISE", "Wise"),
    ("HUMM", "Humm"),
    ("CREDIT_NOTES", "Credit Notes"),
    ("CREDIT", "Credit"),
    ("BANK_TRANSFER", "Bank Transfer"),
]
REFUND_TRANSACTION_METHODS = [
    choice for choice in TRANSACTION_METHODS if choice[0] != "CREDIT_NOTES"
]

# Supplier funding
SUPPLIER_PAYMENT_METHODS = [
    ("BANK_TRANSFER", "Bank Transfer"),
    ("CREDIT_NOTES", "Credit Notes"),
    ("CREDIT", "Credit"),
    ("BANK_TRANSFER_AND_CREDIT", "Bank Transfer + Credit"),
    ("BANK_TRANSFER_AND_CREDIT_NOTES", "Bank Transfer + Credit Notes"),
    ("CREDIT_AND_CREDIT_NOTES", "Credit + Credit Notes"),
]
PAID_AT_BOOKING_METHODS = ("BANK_TRANSFER", "CREDIT_NOTES")
COMBINED_METHOD_SEPARATOR = "_AND_"

CREDIT_NOTE_STATUSES = [
    ("AVAILABLE", "🟢 Available"),
    ("PARTIALLY_USED", "🟠 Partially Used"),
    ("USED", "⚪ Used"),
]

PAYABLE_STATUSES = [
    ("PENDING", "🔴 Pending"),
    ("PAID", "🟢 Paid"),
]

REFUND_STATUSES = [
    ("PENDING", "Pending"),
    ("PAID", "Paid"),
    ("N/A", "Not Applicable"),
]

# Passengers
PASSENGER_TITLES = [
    ("MR", "Mr"),
    ("MRS", "Mrs"),
    ("MS", "Ms"),
    ("MASTER", "Master"),
]
PASSENGER_GENDERS = [
    ("MALE", "Male"),
    ("FEMALE", "Female"),
    ("OTHER", "Other"),
]
PASSENGER_CATEGORIES = [
    ("ADULT", "Adult"),
    ("CHILD", "Child"),
    ("INFANT", "Infant"),
]
