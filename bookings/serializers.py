# bookings/serializers.py
"""Plain dict builders for JsonResponse (DjangoJSONEncoder handles Decimal/date)."""
from .credit_notes import covered_amount

RECORD_FIELDS = (
    "id",
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
    "last_payment_date",
    "num_pax",
    "revenue",
    "prod_cost",
    "trans_fee",
    "surcharge",
    "received",
    "balance",
    "profit",
    "invoiced",
    "description",
    "created_at",
)


def _fields(obj, names):
    return {name: getattr(obj, name) for name in names}


def payment_dict(payment, date_field="payment_date"):
    return {
        "id": payment.pk,
        "amount": payment.amount,
        "transaction_method": payment.transaction_method,
        date_field: getattr(payment, date_field),
    }


def instalment_dict(instalment):
    data = _fields(instalment, ("id", "due_date", "amount", "status"))
    data["payments"] = [payment_dict(p) for p in instalment.payments.all()]
    return data


def allocation_dict(allocation):
    data = _fields(
        allocation,
        (
            "id",
            "amount",
            "payment_method",
            "first_method_amount",
            "second_method_amount",
            "paid_amount",
            "pending_amount",
            "transaction_method",
        ),
    )
    data["supplier"] = allocation.supplier.name
    data["credit_notes_used"] = covered_amount(allocation)
    data["settlements"] = [
        payment_dict(s, "settlement_date") for s in allocation.settlements.all()
    ]
    return data


def cost_item_dict(item):
    return {
        "id": item.pk,
        "category": item.category,
        "amount": item.amount,
        "suppliers": [allocation_dict(a) for a in item.suppliers.all()],
    }


def passenger_dict(passenger):
    return _fields(
        passenger,
        (
            "id",
            "title",
            "first_name",
            "middle_name",
            "last_name",
            "gender",
            "email",
            "contact_no",
            "nationality",
            "birthday",
            "category",
        ),
    )


def _record_dict(record, detail):
    data = _fields(record, RECORD_FIELDS)
    if detail:
        data["initial_payments"] = [payment_dict(p) for p in record.initial_payments.all()]
        data["cost_items"] = [cost_item_dict(i) for i in record.cost_items.all()]
        data["instalments"] = [instalment_dict(i) for i in record.instalments.all()]
        data["passengers"] = [passenger_dict(p) for p in record.passengers.all()]
    return data


def booking_dict(booking, detail=False):
    data = _record_dict(booking, detail)
    data.update(
        folder_no=booking.folder_no,
        booking_status=booking.booking_status,
        original_booking_id=booking.original_booking_id,
        commission_amount=booking.commission_amount,
        void_reason=booking.void_reason or None,
    )
    return data


def pending_booking_dict(pending, detail=False):
    data = _record_dict(pending, detail)
    data.update(
        status=pending.status,
        reviewed_at=pending.reviewed_at,
        approved_booking_id=pending.approved_booking_id,
    )
    return data


def credit_note_dict(note, with_usages=False):
    data = _fields(
        note, ("id", "initial_amount", "remaining_amount", "status", "created_at")
    )
    data["supplier"] = note.supplier.name
    cancellation = note.generated_from_cancellation
    data["generated_from_ref_no"] = (
        cancellation.original_booking.ref_no if cancellation else None
    )
    if with_usages:
        data["usages"] = [
            {
                "id": usage.pk,
                "amount_used": usage.amount_used,
                "used_at": usage.created_at,
                "used_on_allocation_id": usage.used_on_id,
                "used_on_folder_no": getattr(
                    usage.used_on.cost_item.booking, "folder_no", None
                ),
            }
            for usage in note.usages.all()
        ]
    return data


def cancellation_dict(cancellation):
    data = _fields(
        cancellation,
        (
            "id",
            "folder_no",
            "original_revenue",
            "original_prod_cost",
            "supplier_cancellation_fee",
            "admin_fee",
            "refund_to_passenger",
            "payable_by_customer",
            "credit_note_amount",
            "refund_status",
            "refund_transaction_method",
            "profit_or_loss",
            "description",
            "created_at",
        ),
    )
    data["original_booking_id"] = cancellation.original_booking_id
    data["refund_payments"] = [
        payment_dict(r, "refund_date") for r in cancellation.refund_payments.all()
    ]
    return data


def payable_dict(payable):
    data = _fields(
        payable,
        ("id", "total_amount", "paid_amount", "pending_amount", "reason", "status"),
    )
    origin = payable.created_from_cancellation
    data["originating_folder_no"] = origin.original_booking.folder_no if origin else None
    return data


def invoice_dict(invoice):
    data = _fields(invoice, ("id", "amount", "invoice_date", "created_at"))
    data["booking_id"] = invoice.booking_id
    data["created_by"] = invoice.created_by.get_username() if invoice.created_by else None
    return data
