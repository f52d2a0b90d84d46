# bookings/signals.py
import logging

from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce
from django.db.models.signals import post_save
from django.dispatch import receiver

from .allocation import split_supplier_amount
from .constants import TOLERANCE, ZERO
from .models import (
    Booking,
    CostItemSupplier,
    CreditNoteUsage,
    CustomerPayableSettlement,
    InitialPayment,
    InstalmentPayment,
    PassengerRefundPayment,
    SupplierPayableSettlement,
    SupplierPaymentSettlement,
)

logger = logging.getLogger(__name__)


def _safe_sum(queryset, field_name):
    return queryset.aggregate(
        total=Coalesce(Sum(field_name), Value(ZERO), output_field=DecimalField())
    )["total"]


# --- 1. HELPER: BOOKING TOTALS ---
def calculate_received(booking):
    """
    Money actually held for a booking, summed from its payment rows:
    initial payments + instalment payments + customer payable settlements
    - passenger refunds.
    """
    received = _safe_sum(
        InitialPayment.objects.filter(**booking.child_filter()), "amount"
    ) + _safe_sum(
        InstalmentPayment.objects.filter(**booking.child_filter("instalment__")),
        "amount",
    )
    if isinstance(booking, Booking):
        received += _safe_sum(
            CustomerPayableSettlement.objects.filter(payable__booking=booking),
            "amount",
        )
        received -= _safe_sum(
            PassengerRefundPayment.objects.filter(
                cancellation__original_booking=booking
            ),
            "amount",
        )
    return received


def recalculate_booking_totals(booking):
    """
    Rebuild received, balance and profit from the child rows.

    A cancelled chain root reports the cancellation outcome instead: profit is
    the cancellation's profit or loss and balance is what the passenger still
    owes minus what we still have to refund.
    """
    booking.received = calculate_received(booking)
    cancelled = isinstance(booking, Booking) and booking.is_cancelled
    cancellation = getattr(booking, "cancellation", None) if cancelled else None

    if cancellation is not None:
        refunded = _safe_sum(cancellation.refund_payments.all(), "amount")
        outstanding_refund = max(cancellation.refund_to_passenger - refunded, ZERO)
        outstanding_payable = _safe_sum(
            booking.customer_payables.all(), "pending_amount"
        )
        booking.profit = cancellation.profit_or_loss
        booking.balance = outstanding_payable - outstanding_refund
    elif not cancelled:
        booking.apply_financials()

    booking.save(update_fields=["received", "balance", "profit", "updated_at"])
    return booking


# --- 2. HELPER: SUPPLIER ALLOCATIONS ---
def recalculate_supplier_allocation(allocation):
    """paid = share paid at booking time + settlements, pending = the rest."""
    split = split_supplier_amount(
        allocation.amount,
        allocation.payment_method,
        allocation.first_method_amount,
        allocation.second_method_amount,
    )
    settled = _safe_sum(allocation.settlements.all(), "amount")
    paid = min(split["paid_amount"] + settled, allocation.amount)
    allocation.paid_amount = paid
    allocation.pending_amount = allocation.amount - paid
    allocation.save(update_fields=["paid_amount", "pending_amount"])
    return allocation


# --- 3. HELPER: CREDIT NOTES ---
def recalculate_credit_note(note):
    used = _safe_sum(note.usages.all(), "amount_used")
    remaining = note.initial_amount - used
    if remaining < 0:
        # Usages are validated before they are written, so this means
        # someone edited rows by hand.
        logger.warning(
            "Credit note %s overdrawn by %s; clamping to zero", note.pk, -remaining
        )
        remaining = ZERO

    if remaining < TOLERANCE:
        status = "USED"
    elif used > 0:
        status = "PARTIALLY_USED"
    else:
        status = "AVAILABLE"

    note.remaining_amount = remaining
    note.status = status
    note.save(update_fields=["remaining_amount", "status"])
    return note


# --- 4. HELPER: PAYABLES ---
def recalculate_payable(payable):
    paid = _safe_sum(payable.settlements.all(), "amount")
    payable.paid_amount = paid
    payable.pending_amount = max(payable.total_amount - paid, ZERO)
    payable.status = "PAID" if payable.pending_amount < TOLERANCE else "PENDING"
    payable.save(update_fields=["paid_amount", "pending_amount", "status"])
    return payable


# --- 5. PAYMENT SIGNALS ---
# Every payment row is append-only; saving one rebuilds its parent totals
# inside the caller's transaction.


@receiver(post_save, sender=InitialPayment)
def initial_payment_post_save(sender, instance, created, **kwargs):
    owner = instance.booking or instance.pending_booking
    if owner is not None:
        recalculate_booking_totals(owner)


@receiver(post_save, sender=InstalmentPayment)
def instalment_payment_post_save(sender, instance, created, **kwargs):
    instalment = instance.instalment
    owner = instalment.booking or instalment.pending_booking
    if owner is not None:
        recalculate_booking_totals(owner)


@receiver(post_save, sender=SupplierPaymentSettlement)
def supplier_settlement_post_save(sender, instance, created, **kwargs):
    recalculate_supplier_allocation(instance.cost_item_supplier)


@receiver(post_save, sender=CostItemSupplier)
def allocation_post_save(sender, instance, created, update_fields=None, **kwargs):
    # Skip the save issued by recalculate_supplier_allocation itself
    if update_fields and set(update_fields) <= {"paid_amount", "pending_amount"}:
        return
    recalculate_supplier_allocation(instance)


@receiver(post_save, sender=CreditNoteUsage)
def credit_note_usage_post_save(sender, instance, created, **kwargs):
    recalculate_credit_note(instance.credit_note)


@receiver(post_save, sender=SupplierPayableSettlement)
def supplier_payable_settlement_post_save(sender, instance, created, **kwargs):
    recalculate_payable(instance.payable)


@receiver(post_save, sender=CustomerPayableSettlement)
def customer_payable_settlement_post_save(sender, instance, created, **kwargs):
    payable = recalculate_payable(instance.payable)
    recalculate_booking_totals(payable.booking)


@receiver(post_save, sender=PassengerRefundPayment)
def passenger_refund_post_save(sender, instance, created, **kwargs):
    recalculate_booking_totals(instance.cancellation.original_booking)
