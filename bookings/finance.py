# bookings/finance.py
from collections import defaultdict

from django.db.models import Count, Q

from .constants import INSTALMENT_PAYMENT_METHODS, ZERO
from .models import (
    Booking,
    Cancellation,
    CostItemSupplier,
    CreditNote,
    CustomerPayableSettlement,
    InitialPayment,
    InstalmentPayment,
    PassengerRefundPayment,
    PendingBooking,
    SupplierPayable,
    SupplierPayableSettlement,
    SupplierPaymentSettlement,
)
from .signals import _safe_sum


def _in_range(queryset, field, start_date=None, end_date=None):
    if start_date and end_date:
        return queryset.filter(**{f"{field}__range": [start_date, end_date]})
    return queryset


def _row(category, kind, pk, date, amount, method, booking=None, **extra):
    row = {
        "id": f"{kind.lower().replace(' ', '-')}-{pk}",
        "category": category,
        "type": kind,
        "date": date,
        "amount": amount,
        "method": method,
        "folder_no": booking.folder_no if booking else None,
        "ref_no": booking.ref_no if booking else None,
        "pax_name": booking.pax_name if booking else None,
    }
    row.update(extra)
    return row


class FinanceStats:
    # --- 1. DASHBOARD CARDS ---
    @staticmethod
    def dashboard_stats():
        counts = Booking.objects.aggregate(
            total=Count("id"),
            confirmed=Count("id", filter=Q(booking_status="CONFIRMED")),
            completed=Count("id", filter=Q(booking_status="COMPLETED")),
            cancelled=Count("id", filter=Q(booking_status="CANCELLED")),
        )
        live = Booking.objects.exclude(booking_status="VOID")
        return {
            "total_bookings": counts["total"],
            "pending_bookings": PendingBooking.objects.filter(status="PENDING").count(),
            "confirmed": counts["confirmed"],
            "completed": counts["completed"],
            "cancelled": counts["cancelled"],
            "total_revenue": _safe_sum(live, "revenue"),
            "total_profit": _safe_sum(live, "profit"),
            "outstanding_balance": _safe_sum(
                live.exclude(booking_status="CANCELLED").filter(balance__gt=0), "balance"
            ),
        }

    @staticmethod
    def recent_bookings(limit=5):
        bookings = Booking.objects.order_by("-created_at", "-id")[:limit]
        pending = PendingBooking.objects.filter(status="PENDING").order_by(
            "-created_at", "-id"
        )[:limit]
        return list(bookings), list(pending)

    # --- 2. CASH MOVEMENTS ---
    @staticmethod
    def transactions(start_date=None, end_date=None):
        """
        Every money movement on confirmed bookings, newest first.
        Incoming: customer money and cancellation gains. Outgoing: supplier
        payments and passenger refunds.
        """
        rows = []

        for p in _in_range(
            InitialPayment.objects.filter(booking__isnull=False).select_related("booking"),
            "payment_date",
            start_date,
            end_date,
        ):
            rows.append(
                _row("incoming", "Initial Payment", p.pk, p.payment_date, p.amount,
                     p.transaction_method, p.booking)
            )

        for p in _in_range(
            InstalmentPayment.objects.filter(
                instalment__booking__isnull=False
            ).select_related("instalment__booking"),
            "payment_date",
            start_date,
            end_date,
        ):
            kind = "Settlement" if p.instalment.status == "SETTLEMENT" else "Instalment"
            rows.append(
                _row("incoming", kind, p.pk, p.payment_date, p.amount,
                     p.transaction_method, p.instalment.booking)
            )

        for s in _in_range(
            CustomerPayableSettlement.objects.select_related("payable__booking"),
            "payment_date",
            start_date,
            end_date,
        ):
            rows.append(
                _row("incoming", "Customer Payable Settlement", s.pk, s.payment_date,
                     s.amount, s.transaction_method, s.payable.booking)
            )

        for note in _in_range(
            CreditNote.objects.filter(
                generated_from_cancellation__isnull=False
            ).select_related("supplier", "generated_from_cancellation__original_booking"),
            "created_at__date",
            start_date,
            end_date,
        ):
            rows.append(
                _row("incoming", "Credit Note Received", note.pk, note.created_at.date(),
                     note.initial_amount, "CREDIT_NOTES",
                     note.generated_from_cancellation.original_booking,
                     supplier=note.supplier.name)
            )

        for c in _in_range(
            Cancellation.objects.filter(admin_fee__gt=0).select_related("original_booking"),
            "created_at__date",
            start_date,
            end_date,
        ):
            rows.append(
                _row("incoming", "Admin Fee", c.pk, c.created_at.date(), c.admin_fee,
                     None, c.original_booking)
            )

        for a in _in_range(
            CostItemSupplier.objects.filter(
                cost_item__booking__isnull=False,
                payment_method__startswith="BANK_TRANSFER",
            ).select_related("supplier", "cost_item__booking"),
            "created_at__date",
            start_date,
            end_date,
        ):
            paid_now = a.amount if a.payment_method == "BANK_TRANSFER" else a.first_method_amount
            rows.append(
                _row("outgoing", "Initial Supplier Payment", a.pk, a.created_at.date(),
                     paid_now, a.transaction_method or "BANK_TRANSFER",
                     a.cost_item.booking, supplier=a.supplier.name)
            )

        for s in _in_range(
            SupplierPaymentSettlement.objects.filter(
                cost_item_supplier__cost_item__booking__isnull=False
            ).select_related(
                "cost_item_supplier__supplier", "cost_item_supplier__cost_item__booking"
            ),
            "settlement_date",
            start_date,
            end_date,
        ):
            rows.append(
                _row("outgoing", "Supplier Settlement", s.pk, s.settlement_date, s.amount,
                     s.transaction_method, s.cost_item_supplier.cost_item.booking,
                     supplier=s.cost_item_supplier.supplier.name)
            )

        for s in _in_range(
            SupplierPayableSettlement.objects.select_related(
                "payable__supplier", "payable__created_from_cancellation__original_booking"
            ),
            "settlement_date",
            start_date,
            end_date,
        ):
            origin = s.payable.created_from_cancellation
            rows.append(
                _row("outgoing", "Supplier Payable Settlement", s.pk, s.settlement_date,
                     s.amount, s.transaction_method,
                     origin.original_booking if origin else None,
                     supplier=s.payable.supplier.name)
            )

        for r in _in_range(
            PassengerRefundPayment.objects.select_related("cancellation__original_booking"),
            "refund_date",
            start_date,
            end_date,
        ):
            rows.append(
                _row("outgoing", "Passenger Refund", r.pk, r.refund_date, r.amount,
                     r.transaction_method, r.cancellation.original_booking)
            )

        rows.sort(key=lambda row: (row["date"], row["id"]), reverse=True)
        incoming = sum((r["amount"] for r in rows if r["category"] == "incoming"), ZERO)
        outgoing = sum((r["amount"] for r in rows if r["category"] == "outgoing"), ZERO)
        return {
            "transactions": rows,
            "totals": {"incoming": incoming, "outgoing": outgoing, "net": incoming - outgoing},
        }

    # --- 3. CUSTOMER DEPOSITS ---
    @staticmethod
    def customer_deposits():
        bookings = (
            Booking.objects.filter(payment_method__in=INSTALMENT_PAYMENT_METHODS)
            .select_related("cancellation")
            .prefetch_related(
                "initial_payments",
                "instalments__payments",
                "customer_payables__settlements",
                "cancellation__refund_payments",
            )
            .order_by("-pc_date", "-id")
        )
        results = []
        for booking in bookings:
            history = []
            initial_deposit = ZERO
            for p in booking.initial_payments.all():
                initial_deposit += p.amount
                history.append(
                    {"type": "Initial Deposit", "date": p.payment_date,
                     "amount": p.amount, "method": p.transaction_method}
                )
            for instalment in booking.instalments.all():
                kind = (
                    "Final Settlement Payment"
                    if instalment.status == "SETTLEMENT"
                    else f"Instalment Payment ({instalment.pk})"
                )
                for p in instalment.payments.all():
                    history.append(
                        {"type": kind, "date": p.payment_date,
                         "amount": p.amount, "method": p.transaction_method}
                    )
            for payable in booking.customer_payables.all():
                for s in payable.settlements.all():
                    history.append(
                        {"type": "Cancellation Debt Paid", "date": s.payment_date,
                         "amount": s.amount, "method": s.transaction_method}
                    )
            cancellation = getattr(booking, "cancellation", None)
            if cancellation is not None:
                for r in cancellation.refund_payments.all():
                    history.append(
                        {"type": "Passenger Refund Paid", "date": r.refund_date,
                         "amount": -r.amount, "method": r.transaction_method}
                    )
            history.sort(key=lambda entry: entry["date"])

            results.append(
                {
                    "booking": booking,
                    "initial_deposit": initial_deposit,
                    "received": booking.received,
                    # cancelled roots already carry payable - refund as balance
                    "balance": booking.balance,
                    "instalments": list(booking.instalments.all()),
                    "payment_history": history,
                }
            )
        return results

    # --- 4. SUPPLIERS ---
    @staticmethod
    def suppliers_info():
        summary = defaultdict(
            lambda: {
                "total_amount": ZERO,
                "total_paid": ZERO,
                "total_pending": ZERO,
                "total_available_credit": ZERO,
                "total_pending_payables": ZERO,
                "allocations": [],
                "credit_notes": [],
                "payables": [],
            }
        )

        allocations = (
            CostItemSupplier.objects.filter(cost_item__booking__isnull=False)
            .exclude(cost_item__booking__booking_status="VOID")
            .select_related("supplier", "cost_item__booking")
            .prefetch_related("settlements", "credit_note_usages")
        )
        for allocation in allocations:
            booking = allocation.cost_item.booking
            pending = ZERO if booking.is_cancelled else allocation.pending_amount
            entry = summary[allocation.supplier.name]
            entry["total_amount"] += allocation.amount
            entry["total_paid"] += allocation.paid_amount
            entry["total_pending"] += pending
            entry["allocations"].append({"allocation": allocation, "pending_amount": pending})

        for note in CreditNote.objects.select_related(
            "supplier", "generated_from_cancellation__original_booking"
        ).prefetch_related("usages__used_on__cost_item__booking"):
            entry = summary[note.supplier.name]
            entry["total_available_credit"] += note.remaining_amount
            entry["credit_notes"].append(note)

        for payable in SupplierPayable.objects.filter(status="PENDING").select_related(
            "supplier", "created_from_cancellation__original_booking"
        ):
            entry = summary[payable.supplier.name]
            entry["total_pending_payables"] += payable.pending_amount
            entry["payables"].append(payable)

        return dict(sorted(summary.items()))
