# bookings/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from simple_history.models import HistoricalRecords

from .constants import (
    BOOKING_PAYMENT_METHODS,
    BOOKING_STATUSES,
    BOOKING_TYPES,
    CREDIT_NOTE_STATUSES,
    INSTALMENT_STATUSES,
    PASSENGER_CATEGORIES,
    PASSENGER_GENDERS,
    PASSENGER_TITLES,
    PAYABLE_STATUSES,
    PENDING_BOOKING_STATUSES,
    REFUND_STATUSES,
    SUPPLIER_PAYMENT_METHODS,
    TRANSACTION_METHODS,
)
from .financials import derive_financials


def money_field(verbose_name=None, **kwargs):
    kwargs.setdefault("default", Decimal("0.00"))
    return models.DecimalField(
        verbose_name, max_digits=12, decimal_places=2, **kwargs
    )


# --- SUPPORTING ACTORS ---
class Supplier(models.Model):
    name = models.CharField(max_length=200, unique=True)
    contact = models.CharField(max_length=200, blank=True, null=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


# --- THE BOOKING RECORDS ---
class BookingRecord(models.Model):
    """Fields shared by bookings awaiting approval and confirmed bookings."""

    # Related rows point at either a pending or a confirmed booking.
    CHILD_FIELD = None

    ref_no = models.CharField("Reference No", max_length=50, db_index=True)
    pax_name = models.CharField("Lead Passenger", max_length=200)
    agent_name = models.CharField(max_length=100)
    team_name = models.CharField(max_length=100)
    pnr = models.CharField("PNR", max_length=20)
    airline = models.CharField(max_length=100)
    from_to = models.CharField("Route", max_length=100)

    booking_type = models.CharField(max_length=20, choices=BOOKING_TYPES)
    payment_method = models.CharField(max_length=20, choices=BOOKING_PAYMENT_METHODS)

    pc_date = models.DateField("PC Date")
    issued_date = models.DateField(blank=True, null=True)
    travel_date = models.DateField(blank=True, null=True)
    last_payment_date = models.DateField(blank=True, null=True)
    num_pax = models.PositiveIntegerField("Passengers", default=1)

    # Financial inputs
    revenue = money_field()
    prod_cost = money_field("Production Cost")
    trans_fee = money_field("Transaction Fee")
    surcharge = money_field()
    received = money_field()
    # Derived
    balance = money_field()
    profit = money_field()

    invoiced = models.CharField(max_length=100, blank=True)
    description = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="%(class)s_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def apply_financials(self):
        """Recompute profit and balance from the stored inputs."""
        derived = derive_financials(
            self.revenue, self.prod_cost, self.trans_fee, self.surcharge, self.received
        )
        self.profit = derived["profit"]
        self.balance = derived["balance"]
        return derived

    def child_filter(self, prefix=""):
        return {f"{prefix}{self.CHILD_FIELD}": self}


class PendingBooking(BookingRecord):
    CHILD_FIELD = "pending_booking"

    status = models.CharField(
        max_length=20, choices=PENDING_BOOKING_STATUSES, default="PENDING"
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="pending_bookings_reviewed",
    )
    reviewed_at = models.DateTimeField(blank=True, null=True)
    approved_booking = models.OneToOneField(
        "Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_from",
    )

    history = HistoricalRecords()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Pending {self.ref_no} ({self.pax_name})"


class BookingQuerySet(models.QuerySet):
    def chain(self, base_folder_no):
        """The root booking and every date change that followed it."""
        return self.filter(
            Q(folder_no=base_folder_no) | Q(folder_no__startswith=f"{base_folder_no}.")
        )

    def active(self):
        return self.exclude(booking_status__in=["CANCELLED", "VOID"])


class Booking(BookingRecord):
    CHILD_FIELD = "booking"

    folder_no = models.CharField(max_length=20, unique=True, db_index=True)
    booking_status = models.CharField(
        "Status", max_length=20, choices=BOOKING_STATUSES, default="CONFIRMED"
    )
    original_booking = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="date_changes",
        help_text="Booking this one replaced (date changes)",
    )

    # Internal invoicing ceiling, fixed by the first invoice
    commission_amount = models.DecimalField(
        max_digits=12, decimal_places=2, blank=True, null=True
    )

    # Void handling
    status_before_void = models.CharField(
        max_length=20, choices=BOOKING_STATUSES, blank=True
    )
    void_reason = models.TextField(blank=True)
    voided_at = models.DateTimeField(blank=True, null=True)
    voided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings_voided",
    )

    objects = BookingQuerySet.as_manager()
    history = HistoricalRecords()

    class Meta:
        ordering = ["-created_at"]
        permissions = [
            ("approve_bookings", "Can approve, reject and create bookings"),
            ("void_bookings", "Can void and restore bookings"),
            ("manage_financials", "Can manage commissions and internal invoices"),
        ]

    def __str__(self):
        return f"{self.folder_no} - {self.ref_no} ({self.pax_name})"

    @property
    def base_folder_no(self):
        return str(self.folder_no).split(".")[0]

    @property
    def sub_index(self):
        parts = str(self.folder_no).split(".")
        return int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 0

    @property
    def is_cancelled(self):
        return self.booking_status == "CANCELLED"

    @property
    def is_locked(self):
        return self.booking_status in ("CANCELLED", "VOID")

    @classmethod
    def next_folder_no(cls):
        highest = 0
        for folder_no in cls.objects.values_list("folder_no", flat=True):
            root = str(folder_no).split(".")[0]
            if root.isdigit():
                highest = max(highest, int(root))
        return str(highest + 1)


# --- BOOKING DETAILS ---
class InitialPayment(models.Model):
    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="initial_payments",
        null=True,
        blank=True,
    )
    pending_booking = models.ForeignKey(
        PendingBooking,
        on_delete=models.CASCADE,
        related_name="initial_payments",
        null=True,
        blank=True,
    )
    amount = money_field()
    transaction_method = models.CharField(max_length=20, choices=TRANSACTION_METHODS)
    payment_date = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["payment_date", "id"]

    def __str__(self):
        return f"{self.get_transaction_method_display()} : {self.amount}"


class Passenger(models.Model):
    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="passengers",
        null=True,
        blank=True,
    )
    pending_booking = models.ForeignKey(
        PendingBooking,
        on_delete=models.CASCADE,
        related_name="passengers",
        null=True,
        blank=True,
    )
    title = models.CharField(max_length=10, choices=PASSENGER_TITLES)
    first_name = models.CharField(max_length=100)
    middle_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100)
    gender = models.CharField(max_length=10, choices=PASSENGER_GENDERS)
    email = models.EmailField(blank=True)
    contact_no = models.CharField(max_length=40, blank=True)
    nationality = models.CharField(max_length=100, blank=True)
    birthday = models.DateField(blank=True, null=True)
    category = models.CharField(max_length=10, choices=PASSENGER_CATEGORIES)

    def __str__(self):
        return f"{self.get_title_display()} {self.first_name} {self.last_name}"


class CostItem(models.Model):
    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="cost_items",
        null=True,
        blank=True,
    )
    pending_booking = models.ForeignKey(
        PendingBooking,
        on_delete=models.CASCADE,
        related_name="cost_items",
        null=True,
        blank=True,
    )
    category = models.CharField(max_length=100)
    amount = money_field()

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.category}: {self.amount}"


class CostItemSupplier(models.Model):
    cost_item = models.ForeignKey(
        CostItem, on_delete=models.CASCADE, related_name="suppliers"
    )
    supplier = models.ForeignKey(
        Supplier, on_delete=models.PROTECT, related_name="allocations"
    )
    amount = money_field()
    payment_method = models.CharField(max_length=40, choices=SUPPLIER_PAYMENT_METHODS)
    first_method_amount = models.DecimalField(
        max_digits=12, decimal_places=2, blank=True, null=True
    )
    second_method_amount = models.DecimalField(
        max_digits=12, decimal_places=2, blank=True, null=True
    )
    # Derived from the method split plus recorded settlements
    paid_amount = money_field()
    pending_amount = money_field()
    transaction_method = models.CharField(
        max_length=20, choices=TRANSACTION_METHODS, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)

    history = HistoricalRecords()

    class Meta:
        ordering = ["id"]
        verbose_name = "Supplier Allocation"

    def __str__(self):
        return f"{self.supplier} - {self.amount} ({self.get_payment_method_display()})"

    @property
    def owner(self):
        return self.cost_item.booking or self.cost_item.pending_booking


class SupplierPaymentSettlement(models.Model):
    cost_item_supplier = models.ForeignKey(
        CostItemSupplier, on_delete=models.CASCADE, related_name="settlements"
    )
    amount = money_field()
    transaction_method = models.CharField(max_length=20, choices=TRANSACTION_METHODS)
    settlement_date = models.DateField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["settlement_date", "id"]

    def __str__(self):
        return f"Settlement {self.amount} to {self.cost_item_supplier.supplier}"


# --- INSTALMENTS ---
class Instalment(models.Model):
    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="instalments",
        null=True,
        blank=True,
    )
    pending_booking = models.ForeignKey(
        PendingBooking,
        on_delete=models.CASCADE,
        related_name="instalments",
        null=True,
        blank=True,
    )
    due_date = models.DateField()
    amount = money_field()
    status = models.CharField(
        max_length=20, choices=INSTALMENT_STATUSES, default="PENDING"
    )

    history = HistoricalRecords()

    class Meta:
        ordering = ["due_date", "id"]

    def __str__(self):
        return f"{self.due_date} : {self.amount} ({self.status})"


class InstalmentPayment(models.Model):
    instalment = models.ForeignKey(
        Instalment, on_delete=models.CASCADE, related_name="payments"
    )
    amount = money_field()
    transaction_method = models.CharField(max_length=20, choices=TRANSACTION_METHODS)
    payment_date = models.DateField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["payment_date", "id"]

    def __str__(self):
        return f"{self.payment_date} : {self.amount}"


# --- CANCELLATION OUTCOMES ---
class Cancellation(models.Model):
    original_booking = models.OneToOneField(
        Booking, on_delete=models.PROTECT, related_name="cancellation"
    )
    folder_no = models.CharField(max_length=20, unique=True)
    original_revenue = money_field()
    original_prod_cost = money_field()
    supplier_cancellation_fee = money_field()
    admin_fee = money_field()
    refund_to_passenger = money_field()
    payable_by_customer = money_field()
    credit_note_amount = money_field()
    refund_status = models.CharField(
        max_length=10, choices=REFUND_STATUSES, default="N/A"
    )
    refund_transaction_method = models.CharField(
        max_length=20, choices=TRANSACTION_METHODS, blank=True
    )
    profit_or_loss = money_field()
    description = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)

    history = HistoricalRecords()

    def __str__(self):
        return f"Cancellation {self.folder_no}"


class PassengerRefundPayment(models.Model):
    cancellation = models.ForeignKey(
        Cancellation, on_delete=models.CASCADE, related_name="refund_payments"
    )
    amount = money_field()
    transaction_method = models.CharField(max_length=20, choices=TRANSACTION_METHODS)
    refund_date = models.DateField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Refund {self.amount} ({self.refund_date})"


class CreditNote(models.Model):
    supplier = models.ForeignKey(
        Supplier, on_delete=models.PROTECT, related_name="credit_notes"
    )
    initial_amount = money_field()
    remaining_amount = money_field()
    status = models.CharField(
        max_length=20, choices=CREDIT_NOTE_STATUSES, default="AVAILABLE"
    )
    generated_from_cancellation = models.ForeignKey(
        Cancellation,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="credit_notes",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    history = HistoricalRecords()

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"CN-{self.pk} {self.supplier} ({self.remaining_amount}/{self.initial_amount})"


class CreditNoteUsage(models.Model):
    credit_note = models.ForeignKey(
        CreditNote, on_delete=models.PROTECT, related_name="usages"
    )
    used_on = models.ForeignKey(
        CostItemSupplier, on_delete=models.CASCADE, related_name="credit_note_usages"
    )
    amount_used = money_field()
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.amount_used} from CN-{self.credit_note_id}"


class Payable(models.Model):
    total_amount = money_field()
    paid_amount = money_field()
    pending_amount = money_field()
    reason = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=10, choices=PAYABLE_STATUSES, default="PENDING")
    created_from_cancellation = models.ForeignKey(
        Cancellation,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="%(class)ss",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True


class SupplierPayable(Payable):
    """Money we owe a supplier (cancellation fee above what was paid)."""

    supplier = models.ForeignKey(
        Supplier, on_delete=models.PROTECT, related_name="payables"
    )

    history = HistoricalRecords()

    def __str__(self):
        return f"Owed to {self.supplier}: {self.pending_amount}"


class CustomerPayable(Payable):
    """Money the passenger still owes after a cancellation."""

    booking = models.ForeignKey(
        Booking, on_delete=models.CASCADE, related_name="customer_payables"
    )

    history = HistoricalRecords()

    def __str__(self):
        return f"Owed by {self.booking.pax_name}: {self.pending_amount}"


class SupplierPayableSettlement(models.Model):
    payable = models.ForeignKey(
        SupplierPayable, on_delete=models.CASCADE, related_name="settlements"
    )
    amount = money_field()
    transaction_method = models.CharField(max_length=20, choices=TRANSACTION_METHODS)
    settlement_date = models.DateField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)


class CustomerPayableSettlement(models.Model):
    payable = models.ForeignKey(
        CustomerPayable, on_delete=models.CASCADE, related_name="settlements"
    )
    amount = money_field()
    transaction_method = models.CharField(max_length=20, choices=TRANSACTION_METHODS)
    payment_date = models.DateField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)


# --- INTERNAL INVOICING ---
class InternalInvoice(models.Model):
    booking = models.ForeignKey(
        Booking, on_delete=models.PROTECT, related_name="internal_invoices"
    )
    amount = money_field()
    invoice_date = models.DateField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)

    history = HistoricalRecords()

    class Meta:
        ordering = ["-invoice_date", "-id"]

    def __str__(self):
        return f"Invoice {self.pk} for {self.booking.folder_no}: {self.amount}"
