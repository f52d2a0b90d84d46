# bookings/invoices.py
"""Internal commission invoicing against a booking's commission ceiling."""
import logging

from django.db import transaction
from django.db.models import DecimalField, Prefetch, Sum, Value
from django.db.models.functions import Coalesce

from .constants import TOLERANCE, ZERO
from .exceptions import Conflict, ValidationFailed
from .forms import (
    CommissionAmountForm,
    InternalInvoiceForm,
    InternalInvoiceUpdateForm,
    validate,
)
from .models import Booking, InternalInvoice
from .services import lock
from .signals import _safe_sum

logger = logging.getLogger(__name__)


def total_invoiced(booking, exclude=None):
    invoices = InternalInvoice.objects.filter(booking=booking)
    if exclude is not None:
        invoices = invoices.exclude(pk=exclude.pk)
    return _safe_sum(invoices, "amount")


def _check_ceiling(booking, amount, exclude=None):
    already = total_invoiced(booking, exclude)
    remaining = booking.commission_amount - already
    if amount - remaining > TOLERANCE:
        logger.warning(
            "Rejected invoice of %s on %s (remaining commission %s)",
            amount,
            booking.folder_no,
            remaining,
        )
        raise ValidationFailed(
            f"Invoice amount ({amount}) exceeds the remaining commission ({remaining})."
        )


def create_internal_invoice(data, user=None):
    cleaned = validate(InternalInvoiceForm, data)
    with transaction.atomic():
        booking = lock(Booking, cleaned["booking_id"], "Booking")
        if booking.is_locked:
            raise Conflict(
                f"A {booking.booking_status.lower()} booking cannot be invoiced."
            )

        commission = cleaned.get("commission_amount")
        first_invoice = not booking.internal_invoices.exists()
        if first_invoice:
            if commission is None:
                raise ValidationFailed(
                    "The first invoice of a booking must set the commission amount."
                )
            booking.commission_amount = commission
            booking.save(update_fields=["commission_amount", "updated_at"])
        elif booking.commission_amount is None:
            raise ValidationFailed("This booking has no commission amount set.")

        _check_ceiling(booking, cleaned["amount"])
        invoice = InternalInvoice.objects.create(
            booking=booking,
            amount=cleaned["amount"],
            invoice_date=cleaned["invoice_date"],
            created_by=user,
        )
    logger.info("Internal invoice %s of %s for %s", invoice.pk, invoice.amount, booking.folder_no)
    return invoice


def update_internal_invoice(invoice, data, user=None):
    cleaned = validate(InternalInvoiceUpdateForm, data)
    with transaction.atomic():
        invoice = lock(InternalInvoice, invoice.pk, "Invoice")
        booking = lock(Booking, invoice.booking_id, "Booking")
        if booking.is_cancelled:
            raise Conflict("Invoices of a cancelled booking cannot be changed.")
        _check_ceiling(booking, cleaned["amount"], exclude=invoice)
        invoice.amount = cleaned["amount"]
        invoice.invoice_date = cleaned["invoice_date"]
        invoice.save()
    logger.info("Internal invoice %s updated to %s", invoice.pk, invoice.amount)
    return invoice


def update_commission_amount(booking, data, user=None):
    commission = validate(CommissionAmountForm, data)["commission_amount"]
    with transaction.atomic():
        booking = lock(Booking, booking.pk, "Booking")
        if booking.is_locked:
            raise Conflict("Commission cannot change on a cancelled or void booking.")
        already = total_invoiced(booking)
        if already - commission > TOLERANCE:
            raise ValidationFailed(
                f"Commission ({commission}) is below what is already invoiced ({already})."
            )
        booking.commission_amount = commission
        booking.save(update_fields=["commission_amount", "updated_at"])
    return booking


def invoice_history(booking):
    return booking.internal_invoices.select_related("created_by").order_by(
        "-invoice_date", "-id"
    )


def invoice_report():
    """
    One row per booking with its commission position. Cancelled bookings
    show the cancellation's profit or loss and no commission.
    """
    bookings = (
        Booking.objects.select_related("cancellation")
        .prefetch_related(
            Prefetch(
                "internal_invoices",
                queryset=InternalInvoice.objects.order_by("-invoice_date", "-id"),
            )
        )
        .annotate(
            invoiced_total=Coalesce(
                Sum("internal_invoices__amount"),
                Value(ZERO),
                output_field=DecimalField(),
            )
        )
        .order_by("-pc_date", "-id")
    )
    rows = []
    for booking in bookings:
        cancellation = getattr(booking, "cancellation", None)
        if cancellation is not None:
            rows.append(
                {
                    "booking": booking,
                    "profit": cancellation.profit_or_loss,
                    "commission_amount": None,
                    "total_invoiced": ZERO,
                    "remaining_commission": None,
                    "invoices": [],
                }
            )
            continue
        commission = booking.commission_amount
        rows.append(
            {
                "booking": booking,
                "profit": booking.profit,
                "commission_amount": commission,
                "total_invoiced": booking.invoiced_total,
                "remaining_commission": (
                    commission - booking.invoiced_total if commission is not None else None
                ),
                "invoices": list(booking.internal_invoices.all()),
            }
        )
    return rows
