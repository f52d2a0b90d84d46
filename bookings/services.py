# bookings/services.py
"""
Booking lifecycle and payment recording.

Every operation here runs in one transaction with the parent row locked.
Payment rows are append-only; the post_save receivers in signals.py rebuild
the parent totals from them, so callers re-read the parent before returning.
"""
import logging

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from .constants import TOLERANCE, ZERO
from .credit_notes import consume_credit_notes, release_credit_notes, reserve_credit_notes
from .exceptions import Conflict, NotFound, ValidationFailed
from .forms import (
    BookingUpdateForm,
    DateChangeDetailsForm,
    InstalmentPaymentForm,
    PaymentForm,
    SupplierPayableSettlementForm,
    SupplierSettlementForm,
    VoidForm,
    bind,
    clean_booking_payload,
    validate,
)
from .models import (
    Booking,
    CostItem,
    CostItemSupplier,
    CustomerPayable,
    CustomerPayableSettlement,
    InitialPayment,
    Instalment,
    InstalmentPayment,
    Passenger,
    PendingBooking,
    Supplier,
    SupplierPayable,
    SupplierPayableSettlement,
    SupplierPaymentSettlement,
)
from .signals import recalculate_booking_totals

logger = logging.getLogger(__name__)

RECORD_FIELDS = (
    "ref_no",
    "pax_name",
    "agent_name",
    "team_name",
    "pnr",
    "airline",
    "from_to",
    "booking_type",
    "payment_method",
    "pc_date",
    "issued_date",
    "travel_date",
    "num_pax",
    "revenue",
    "prod_cost",
    "trans_fee",
    "surcharge",
    "received",
    "profit",
    "balance",
    "invoiced",
    "description",
)

CHILD_MODELS = (InitialPayment, CostItem, Instalment, Passenger)


def lock(model, pk, label=None):
    """Re-read a row with select_for_update, or raise NotFound."""
    obj = model.objects.select_for_update().filter(pk=pk).first()
    if obj is None:
        raise NotFound(f"{label or model._meta.verbose_name.title()} not found.")
    return obj


def _ensure_open(booking):
    if booking.is_cancelled:
        raise Conflict("This booking is cancelled and can no longer be changed.")
    if booking.booking_status == "VOID":
        raise Conflict("This booking is void and can no longer be changed.")


# --- 1. HELPER: WRITING A BOOKING'S ROWS ---
def _record_values(payload):
    return {field: payload[field] for field in RECORD_FIELDS if field in payload}


def _write_children(owner, payload):
    """Create payments, cost breakdown, instalments and passengers for owner."""
    link = owner.child_filter()
    notes = reserve_credit_notes(payload["cost_items"])

    for payment in payload["initial_payments"]:
        InitialPayment.objects.create(**link, **payment)

    for item in payload["cost_items"]:
        cost_item = CostItem.objects.create(
            **link, category=item["category"], amount=item["amount"]
        )
        for share in item["suppliers"]:
            supplier, _ = Supplier.objects.get_or_create(name=share["supplier"].strip())
            allocation = CostItemSupplier.objects.create(
                cost_item=cost_item,
                supplier=supplier,
                amount=share["amount"],
                payment_method=share["payment_method"],
                first_method_amount=share.get("first_method_amount"),
                second_method_amount=share.get("second_method_amount"),
                paid_amount=share["paid_amount"],
                pending_amount=share["pending_amount"],
                transaction_method=share.get("transaction_method") or "",
            )
            if share.get("selected_credit_notes"):
                consume_credit_notes(allocation, share["selected_credit_notes"], notes)

    for instalment in payload["instalments"]:
        Instalment.objects.create(**link, **instalment)

    for passenger in payload["passengers"]:
        Passenger.objects.create(**link, **passenger)


def _clear_children(owner):
    release_credit_notes(owner)
    for model in CHILD_MODELS:
        model.objects.filter(**owner.child_filter()).delete()


def _finish(owner):
    recalculate_booking_totals(owner)
    owner.refresh_from_db()
    return owner


# --- 2. PENDING BOOKINGS ---
def create_pending_booking(data, user=None):
    payload = clean_booking_payload(data)
    with transaction.atomic():
        pending = PendingBooking.objects.create(
            **_record_values(payload), status="PENDING", created_by=user
        )
        _write_children(pending, payload)
        pending = _finish(pending)
    logger.info("Pending booking %s created for %s", pending.pk, pending.pax_name)
    return pending


def update_pending_booking(pending, data, user=None):
    payload = clean_booking_payload(data)
    with transaction.atomic():
        pending = lock(PendingBooking, pending.pk, "Pending booking")
        if pending.status != "PENDING":
            raise Conflict(f"Pending booking is already {pending.status.lower()}.")
        for field, value in _record_values(payload).items():
            setattr(pending, field, value)
        pending.save()
        _clear_children(pending)
        _write_children(pending, payload)
        pending = _finish(pending)
    logger.info("Pending booking %s updated", pending.pk)
    return pending


def approve_pending_booking(pending, user=None):
    with transaction.atomic():
        pending = lock(PendingBooking, pending.pk, "Pending booking")
        if pending.status != "PENDING":
            logger.warning(
                "Refused to approve pending booking %s (%s)", pending.pk, pending.status
            )
            raise Conflict(f"Pending booking is already {pending.status.lower()}.")

        values = {field: getattr(pending, field) for field in RECORD_FIELDS}
        values["last_payment_date"] = pending.last_payment_date
        booking = Booking.objects.create(
            **values,
            folder_no=Booking.next_folder_no(),
            booking_status="CONFIRMED",
            created_by=pending.created_by,
        )
        # Rows move across untouched; credit note usages follow their allocations
        for model in CHILD_MODELS:
            model.objects.filter(pending_booking=pending).update(
                booking=booking, pending_booking=None
            )

        pending.status = "APPROVED"
        pending.reviewed_by = user
        pending.reviewed_at = timezone.now()
        pending.approved_booking = booking
        pending.save()
        booking = _finish(booking)

    logger.info("Pending booking %s approved as folder %s", pending.pk, booking.folder_no)
    return booking


def reject_pending_booking(pending, user=None):
    with transaction.atomic():
        pending = lock(PendingBooking, pending.pk, "Pending booking")
        if pending.status != "PENDING":
            logger.warning(
                "Refused to reject pending booking %s (%s)", pending.pk, pending.status
            )
            raise Conflict(f"Pending booking is already {pending.status.lower()}.")
        release_credit_notes(pending)
        pending.status = "REJECTED"
        pending.reviewed_by = user
        pending.reviewed_at = timezone.now()
        pending.save()
    logger.info("Pending booking %s rejected", pending.pk)
    return pending


# --- 3. CONFIRMED BOOKINGS ---
def create_booking(data, user=None):
    """Direct confirmed booking, skipping the approval queue."""
    payload = clean_booking_payload(data)
    with transaction.atomic():
        booking = Booking.objects.create(
            **_record_values(payload),
            folder_no=Booking.next_folder_no(),
            booking_status="CONFIRMED",
            created_by=user,
        )
        _write_children(booking, payload)
        booking = _finish(booking)
    logger.info("Booking %s created", booking.folder_no)
    return booking


def update_booking(booking, data, user=None):
    changes = bind(BookingUpdateForm, data).changed_values()

    with transaction.atomic():
        booking = lock(Booking, booking.pk, "Booking")
        _ensure_open(booking)
        for field, value in changes.items():
            if value is None and field in ("revenue", "trans_fee", "surcharge"):
                value = ZERO
            setattr(booking, field, value)
        booking.save()
        booking = _finish(booking)
    logger.info("Booking %s updated (%s)", booking.folder_no, ", ".join(changes) or "-")
    return booking


def create_date_change(booking, data, user=None):
    """New booking in the same folder chain: '<n>.<k+1>'."""
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object.")
    payload = clean_booking_payload(
        {**data, "booking_type": "DATE_CHANGE"},
        details_form=DateChangeDetailsForm,
        require_initial_payment=False,
    )

    with transaction.atomic():
        booking = lock(Booking, booking.pk, "Booking")
        chain = list(
            Booking.objects.select_for_update().chain(booking.base_folder_no)
        )
        if any(b.is_cancelled for b in chain):
            raise Conflict("This booking chain has been cancelled.")
        if booking.booking_status == "VOID":
            raise Conflict("A void booking cannot be date-changed.")

        chain.sort(key=lambda b: b.sub_index)
        next_index = chain[-1].sub_index + 1
        for previous in chain:
            if previous.booking_status in ("CONFIRMED", "PENDING"):
                previous.booking_status = "COMPLETED"
                previous.save(update_fields=["booking_status", "updated_at"])

        new_booking = Booking.objects.create(
            **_record_values(payload),
            folder_no=f"{booking.base_folder_no}.{next_index}",
            booking_status="CONFIRMED",
            original_booking=booking,
            created_by=user,
        )
        _write_children(new_booking, payload)
        new_booking = _finish(new_booking)

    logger.info(
        "Date change %s created from %s", new_booking.folder_no, booking.folder_no
    )
    return new_booking


def void_booking(booking, data, user=None):
    reason = validate(VoidForm, data)["reason"]
    with transaction.atomic():
        booking = lock(Booking, booking.pk, "Booking")
        if booking.booking_status == "VOID":
            raise Conflict("Booking is already void.")
        if booking.is_cancelled:
            raise Conflict("A cancelled booking cannot be voided.")
        booking.status_before_void = booking.booking_status
        booking.booking_status = "VOID"
        booking.void_reason = reason
        booking.voided_at = timezone.now()
        booking.voided_by = user
        booking.save()
    logger.info("Booking %s voided: %s", booking.folder_no, reason)
    return booking


def unvoid_booking(booking, user=None):
    with transaction.atomic():
        booking = lock(Booking, booking.pk, "Booking")
        if booking.booking_status != "VOID":
            raise Conflict("Only void bookings can be restored.")
        booking.booking_status = booking.status_before_void or "CONFIRMED"
        booking.status_before_void = ""
        booking.void_reason = ""
        booking.voided_at = None
        booking.voided_by = None
        booking.save()
    logger.info("Booking %s restored to %s", booking.folder_no, booking.booking_status)
    return booking


# --- 4. CUSTOMER PAYMENTS ---
def _touch_last_payment(owner, payment_date):
    owner.refresh_from_db()
    if owner.last_payment_date is None or payment_date > owner.last_payment_date:
        owner.last_payment_date = payment_date
        owner.save(update_fields=["last_payment_date", "updated_at"])
    return owner


def pay_instalment(instalment, data, user=None):
    """
    Record a payment against one scheduled instalment.

    The scheduled amount is kept as planned. The instalment turns PAID once its
    payments cover it, otherwise it stays PENDING and takes further payments.
    """
    cleaned = validate(InstalmentPaymentForm, data)
    amount = cleaned["amount"]

    with transaction.atomic():
        instalment = lock(Instalment, instalment.pk, "Instalment")
        if instalment.booking_id:
            owner = lock(Booking, instalment.booking_id, "Booking")
            _ensure_open(owner)
        else:
            owner = lock(PendingBooking, instalment.pending_booking_id, "Pending booking")
            if owner.status != "PENDING":
                raise Conflict(f"Pending booking is already {owner.status.lower()}.")
        if instalment.status == "PAID":
            logger.warning("Instalment %s is already paid", instalment.pk)
            raise Conflict("Instalment is already paid.")
        if amount - owner.balance > TOLERANCE:
            raise ValidationFailed(
                f"Payment ({amount}) exceeds the outstanding balance ({owner.balance})."
            )

        InstalmentPayment.objects.create(
            instalment=instalment,
            amount=amount,
            transaction_method=cleaned["transaction_method"],
            payment_date=cleaned["payment_date"],
            created_by=user,
        )
        paid = instalment.payments.aggregate(total=Sum("amount"))["total"] or ZERO
        if instalment.amount - paid <= TOLERANCE:
            instalment.status = "PAID"
            instalment.save(update_fields=["status"])
        _touch_last_payment(owner, cleaned["payment_date"])

    logger.info("Instalment %s paid: %s", instalment.pk, amount)
    instalment.refresh_from_db()
    return instalment


def record_settlement_payment(booking, data, user=None):
    """Free-form payment against the balance, kept on a SETTLEMENT instalment."""
    cleaned = validate(PaymentForm, data)
    amount = cleaned["amount"]

    with transaction.atomic():
        booking = lock(Booking, booking.pk, "Booking")
        _ensure_open(booking)
        if amount - booking.balance > TOLERANCE:
            logger.warning(
                "Rejected settlement of %s on %s (balance %s)",
                amount,
                booking.folder_no,
                booking.balance,
            )
            raise ValidationFailed(
                f"Payment ({amount}) exceeds the outstanding balance ({booking.balance})."
            )

        instalment = (
            booking.instalments.select_for_update().filter(status="SETTLEMENT").first()
        )
        if instalment is None:
            instalment = Instalment.objects.create(
                booking=booking,
                due_date=cleaned["payment_date"],
                amount=ZERO,
                status="SETTLEMENT",
            )
        instalment.amount += amount
        instalment.save(update_fields=["amount"])
        InstalmentPayment.objects.create(
            instalment=instalment,
            amount=amount,
            transaction_method=cleaned["transaction_method"],
            payment_date=cleaned["payment_date"],
            created_by=user,
        )
        booking = _touch_last_payment(booking, cleaned["payment_date"])

    logger.info("Settlement of %s recorded on %s", amount, booking.folder_no)
    return booking


# --- 5. SUPPLIER SIDE ---
def settle_supplier_payment(data, user=None):
    cleaned = validate(SupplierSettlementForm, data)
    amount = cleaned["amount"]

    with transaction.atomic():
        allocation = lock(
            CostItemSupplier, cleaned["cost_item_supplier_id"], "Supplier allocation"
        )
        owner = allocation.owner
        if isinstance(owner, Booking):
            _ensure_open(owner)
        if amount - allocation.pending_amount > TOLERANCE:
            logger.warning(
                "Rejected supplier settlement of %s on allocation %s (pending %s)",
                amount,
                allocation.pk,
                allocation.pending_amount,
            )
            raise ValidationFailed(
                f"Settlement amount ({amount}) exceeds the pending amount "
                f"({allocation.pending_amount})."
            )
        SupplierPaymentSettlement.objects.create(
            cost_item_supplier=allocation,
            amount=amount,
            transaction_method=cleaned["transaction_method"],
            settlement_date=cleaned["settlement_date"],
            created_by=user,
        )
        allocation.refresh_from_db()

    logger.info(
        "Supplier %s settled %s on allocation %s", allocation.supplier, amount, allocation.pk
    )
    return allocation


def _check_payable(payable, amount):
    if payable.status == "PAID":
        raise Conflict("This payable is already settled.")
    if amount - payable.pending_amount > TOLERANCE:
        logger.warning(
            "Rejected payable settlement of %s (pending %s)",
            amount,
            payable.pending_amount,
        )
        raise ValidationFailed(
            f"Amount ({amount}) exceeds the pending amount ({payable.pending_amount})."
        )


def settle_supplier_payable(data, user=None):
    cleaned = validate(SupplierPayableSettlementForm, data)
    with transaction.atomic():
        payable = lock(SupplierPayable, cleaned["payable_id"], "Supplier payable")
        _check_payable(payable, cleaned["amount"])
        SupplierPayableSettlement.objects.create(
            payable=payable,
            amount=cleaned["amount"],
            transaction_method=cleaned["transaction_method"],
            settlement_date=cleaned["settlement_date"],
            created_by=user,
        )
        payable.refresh_from_db()
    logger.info("Supplier payable %s settled %s", payable.pk, cleaned["amount"])
    return payable


def settle_customer_payable(payable, data, user=None):
    cleaned = validate(PaymentForm, data)
    with transaction.atomic():
        payable = lock(CustomerPayable, payable.pk, "Customer payable")
        _check_payable(payable, cleaned["amount"])
        CustomerPayableSettlement.objects.create(
            payable=payable,
            amount=cleaned["amount"],
            transaction_method=cleaned["transaction_method"],
            payment_date=cleaned["payment_date"],
            created_by=user,
        )
        payable.refresh_from_db()
        _touch_last_payment(payable.booking, cleaned["payment_date"])
    logger.info("Customer payable %s settled %s", payable.pk, cleaned["amount"])
    return payable
