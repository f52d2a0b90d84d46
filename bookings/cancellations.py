# bookings/cancellations.py
"""
Cancelling a booking chain and paying the passenger back.

A chain is the root booking "<n>" plus every date change "<n>.k". The
cancellation outcome is computed once for the whole chain:

    supplier_difference = prod_cost (chain) - supplier_cancellation_fee
    customer_difference = received (chain) - (supplier fee + admin fee)

A positive supplier difference becomes a credit note with the primary
supplier, a negative one a supplier payable. A positive customer difference
is refunded to the passenger, a negative one becomes a customer payable.
"""
import logging

from django.db import transaction

from .constants import TOLERANCE, ZERO
from .credit_notes import issue_credit_note
from .exceptions import Conflict, ValidationFailed
from .forms import CancellationForm, PassengerRefundForm, validate
from .models import (
    Booking,
    Cancellation,
    CostItemSupplier,
    CustomerPayable,
    PassengerRefundPayment,
    SupplierPayable,
)
from .services import lock
from .signals import _safe_sum, recalculate_booking_totals

logger = logging.getLogger(__name__)


def primary_supplier(booking):
    """First supplier of the booking's first cost item."""
    allocation = (
        CostItemSupplier.objects.filter(cost_item__booking=booking)
        .select_related("supplier")
        .order_by("cost_item_id", "id")
        .first()
    )
    return allocation.supplier if allocation else None


def cancellation_outcome(prod_cost, received, supplier_fee, admin_fee):
    """Pure figures for a chain cancellation."""
    supplier_difference = prod_cost - supplier_fee
    customer_difference = received - (supplier_fee + admin_fee)
    refund = max(customer_difference, ZERO)
    payable = max(-customer_difference, ZERO)
    return {
        "supplier_difference": supplier_difference,
        "refund_to_passenger": refund,
        "payable_by_customer": payable,
        "credit_note_amount": max(supplier_difference, ZERO),
        "profit_or_loss": (received - prod_cost) - refund + payable,
    }


def cancel_booking(booking, data, user=None):
    cleaned = validate(CancellationForm, data)
    supplier_fee = cleaned["supplier_cancellation_fee"]
    admin_fee = cleaned["admin_fee"]

    with transaction.atomic():
        booking = lock(Booking, booking.pk, "Booking")
        base = booking.base_folder_no
        chain = list(Booking.objects.select_for_update().chain(base))

        if any(b.is_cancelled for b in chain):
            logger.warning("Chain %s is already cancelled", base)
            raise Conflict("This booking chain has already been cancelled.")
        root = next((b for b in chain if b.folder_no == base), None)
        if root is None:
            raise ValidationFailed(f"Could not find root booking {base} in chain.")

        prod_cost = sum((b.prod_cost for b in chain), ZERO)
        received = sum((b.received for b in chain), ZERO)
        outcome = cancellation_outcome(prod_cost, received, supplier_fee, admin_fee)

        cancellation = Cancellation.objects.create(
            original_booking=root,
            folder_no=f"{base}.C",
            original_revenue=root.revenue,
            original_prod_cost=root.prod_cost,
            supplier_cancellation_fee=supplier_fee,
            admin_fee=admin_fee,
            refund_to_passenger=outcome["refund_to_passenger"],
            payable_by_customer=outcome["payable_by_customer"],
            credit_note_amount=outcome["credit_note_amount"],
            refund_status="PENDING" if outcome["refund_to_passenger"] > 0 else "N/A",
            refund_transaction_method=cleaned.get("refund_transaction_method") or "",
            profit_or_loss=outcome["profit_or_loss"],
            description=(
                f"Cancellation for booking chain {base}. "
                f"Triggered by booking {booking.folder_no}."
            ),
            created_by=user,
        )

        supplier = primary_supplier(root)
        difference = outcome["supplier_difference"]
        if difference != 0 and supplier is None:
            logger.warning(
                "No primary supplier on booking %s; supplier outcome %s not recorded",
                root.folder_no,
                difference,
            )
        elif difference > 0:
            issue_credit_note(supplier, difference, cancellation)
        elif difference < 0:
            SupplierPayable.objects.create(
                supplier=supplier,
                total_amount=-difference,
                pending_amount=-difference,
                reason=f"Cancellation fee shortfall for booking chain {base}",
                created_from_cancellation=cancellation,
            )

        if outcome["payable_by_customer"] > 0:
            CustomerPayable.objects.create(
                booking=root,
                total_amount=outcome["payable_by_customer"],
                pending_amount=outcome["payable_by_customer"],
                reason=f"Cancellation shortfall for booking chain {base}",
                created_from_cancellation=cancellation,
            )

        for chain_booking in chain:
            chain_booking.booking_status = "CANCELLED"
            chain_booking.save(update_fields=["booking_status", "updated_at"])
        recalculate_booking_totals(root)

    logger.info(
        "Chain %s cancelled: refund %s, payable %s, credit note %s",
        base,
        outcome["refund_to_passenger"],
        outcome["payable_by_customer"],
        outcome["credit_note_amount"],
    )
    cancellation.refresh_from_db()
    return cancellation


def outstanding_refund(cancellation):
    refunded = _safe_sum(cancellation.refund_payments.all(), "amount")
    return max(cancellation.refund_to_passenger - refunded, ZERO)


def record_passenger_refund(cancellation, data, user=None):
    cleaned = validate(PassengerRefundForm, data)
    amount = cleaned["amount"]

    with transaction.atomic():
        cancellation = lock(Cancellation, cancellation.pk, "Cancellation")
        if cancellation.refund_status == "PAID":
            raise Conflict("Refund has already been paid.")
        if cancellation.refund_status != "PENDING":
            raise ValidationFailed("No refund is due for this cancellation.")

        outstanding = outstanding_refund(cancellation)
        if amount - outstanding > TOLERANCE:
            logger.warning(
                "Rejected refund of %s on %s (outstanding %s)",
                amount,
                cancellation.folder_no,
                outstanding,
            )
            raise ValidationFailed(
                f"Refund amount ({amount}) exceeds the outstanding refund ({outstanding})."
            )

        PassengerRefundPayment.objects.create(
            cancellation=cancellation,
            amount=amount,
            transaction_method=cleaned["transaction_method"],
            refund_date=cleaned["refund_date"],
            created_by=user,
        )
        cancellation.refund_transaction_method = cleaned["transaction_method"]
        if outstanding_refund(cancellation) < TOLERANCE:
            cancellation.refund_status = "PAID"
        cancellation.save(update_fields=["refund_status", "refund_transaction_method"])

    logger.info("Refund of %s recorded on %s", amount, cancellation.folder_no)
    return cancellation
