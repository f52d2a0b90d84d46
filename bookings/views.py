# bookings/views.py
import json
import logging
from datetime import datetime, timedelta
from functools import wraps

from django.contrib.admin.views.decorators import staff_member_required
from django.db import IntegrityError
from django.http import Http404, HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.views.decorators.http import require_http_methods

from . import cancellations, invoices, services
from .credit_notes import available_credit_notes
from .exceptions import BookingError, ValidationFailed
from .finance import FinanceStats
from .financials import (
    build_instalment_plan,
    calculate_interest,
    derive_financials,
    repayment_months_between,
)
from .forms import FinancialPreviewForm, InstalmentPlanForm, InterestPlanForm, validate
from .models import (
    Booking,
    Cancellation,
    CustomerPayable,
    Instalment,
    InternalInvoice,
    PendingBooking,
)
from .permissions import (
    can_approve_bookings,
    can_manage_financials,
    can_void_bookings,
    is_agent,
)
from .serializers import (
    allocation_dict,
    booking_dict,
    cancellation_dict,
    credit_note_dict,
    instalment_dict,
    invoice_dict,
    payable_dict,
    pending_booking_dict,
)

logger = logging.getLogger(__name__)


# --- 1. HELPERS ---
def api_view(methods=("GET",), permission=None):
    """
    Staff-only JSON endpoint. The view returns data (or (data, status)); errors
    become {"success": false, "message": ...} with the matching status code.
    """

    def decorator(func):
        @staff_member_required
        @require_http_methods(list(methods))
        @wraps(func)
        def wrapper(request, *args, **kwargs):
            if permission is not None and not permission(request.user):
                return JsonResponse(
                    {"success": False, "message": "You don't have permission to do this."},
                    status=403,
                )
            try:
                result = func(request, *args, **kwargs)
            except BookingError as exc:
                return JsonResponse(exc.to_dict(), status=exc.status_code)
            except Http404 as exc:
                return JsonResponse(
                    {"success": False, "message": str(exc) or "Not found."}, status=404
                )
            except IntegrityError as exc:
                logger.warning("Integrity error in %s: %s", func.__name__, exc)
                return JsonResponse(
                    {"success": False, "message": f"Conflicting update: {exc}"},
                    status=409,
                )
            except Exception as exc:
                logger.exception("Unhandled error in %s", func.__name__)
                return JsonResponse(
                    {"success": False, "message": f"Internal server error: {exc}"},
                    status=500,
                )

            if isinstance(result, HttpResponse):
                return result
            status = 200
            if isinstance(result, tuple):
                result, status = result
            return JsonResponse({"success": True, "data": result}, status=status)

        return wrapper

    return decorator


def json_body(request):
    if not request.body:
        return {}
    try:
        return json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationFailed("Request body is not valid JSON.")


def period_range(request):
    """(date_from, date_to) from ?period=..., or (None, None) for everything."""
    today = timezone.now().date()
    start_of_month = today.replace(day=1)
    period = request.GET.get("period", "all")

    if period == "today":
        return today, today
    if period == "this_week":
        return today - timedelta(days=today.weekday()), today
    if period == "this_month":
        return start_of_month, today
    if period == "last_month":
        last_month_end = start_of_month - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end
    if period == "custom":
        try:
            date_from = datetime.strptime(request.GET.get("date_from", ""), "%Y-%m-%d")
            date_to = datetime.strptime(request.GET.get("date_to", ""), "%Y-%m-%d")
        except ValueError:
            raise ValidationFailed("Custom periods need date_from and date_to (YYYY-MM-DD).")
        return date_from.date(), date_to.date()
    return None, None


# healthcheck for load balancers
def healthz(request):
    from django.db import connection

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        return HttpResponse("OK", status=200)
    except Exception:
        logger.exception("Healthcheck failed")
        return HttpResponse("DB Error", status=503)


# --- 2. PENDING BOOKINGS ---
@api_view(methods=("GET", "POST"))
def pending_bookings(request):
    if request.method == "POST":
        pending = services.create_pending_booking(json_body(request), request.user)
        return pending_booking_dict(pending, detail=True), 201

    queryset = PendingBooking.objects.filter(
        status=request.GET.get("status", "PENDING")
    ).prefetch_related(
        "initial_payments",
        "cost_items__suppliers__supplier",
        "instalments__payments",
        "passengers",
    )
    if is_agent(request.user):
        queryset = queryset.filter(created_by=request.user)
    return [pending_booking_dict(p, detail=True) for p in queryset]


@api_view(methods=("GET", "PUT"))
def pending_booking_detail(request, pk):
    queryset = PendingBooking.objects.all()
    if is_agent(request.user):
        queryset = queryset.filter(created_by=request.user)
    pending = get_object_or_404(queryset, pk=pk)
    if request.method == "PUT":
        pending = services.update_pending_booking(pending, json_body(request), request.user)
    return pending_booking_dict(pending, detail=True)


@api_view(methods=("POST",), permission=can_approve_bookings)
def approve_pending_booking(request, pk):
    pending = get_object_or_404(PendingBooking, pk=pk)
    booking = services.approve_pending_booking(pending, request.user)
    return booking_dict(booking, detail=True)


@api_view(methods=("POST",), permission=can_approve_bookings)
def reject_pending_booking(request, pk):
    pending = get_object_or_404(PendingBooking, pk=pk)
    return pending_booking_dict(services.reject_pending_booking(pending, request.user))


# --- 3. BOOKINGS ---
@api_view(methods=("GET", "POST"))
def bookings(request):
    if request.method == "POST":
        if not can_approve_bookings(request.user):
            return JsonResponse(
                {"success": False, "message": "Only managers can create confirmed bookings."},
                status=403,
            )
        booking = services.create_booking(json_body(request), request.user)
        return booking_dict(booking, detail=True), 201

    queryset = Booking.objects.all()
    status = request.GET.get("status")
    if status:
        queryset = queryset.filter(booking_status=status)
    folder = request.GET.get("folder_no")
    if folder:
        queryset = queryset.chain(folder.split(".")[0])
    return [booking_dict(b) for b in queryset]


@api_view(methods=("GET", "PUT"))
def booking_detail(request, pk):
    booking = get_object_or_404(Booking, pk=pk)
    if request.method == "PUT":
        booking = services.update_booking(booking, json_body(request), request.user)
    return booking_dict(booking, detail=True)


@api_view(methods=("POST",))
def date_change(request, pk):
    booking = get_object_or_404(Booking, pk=pk)
    new_booking = services.create_date_change(booking, json_body(request), request.user)
    return booking_dict(new_booking, detail=True), 201


@api_view(methods=("POST",), permission=can_void_bookings)
def void_booking(request, pk):
    booking = get_object_or_404(Booking, pk=pk)
    return booking_dict(services.void_booking(booking, json_body(request), request.user))


@api_view(methods=("POST",), permission=can_void_bookings)
def unvoid_booking(request, pk):
    booking = get_object_or_404(Booking, pk=pk)
    return booking_dict(services.unvoid_booking(booking, request.user))


# --- 4. PAYMENTS & SETTLEMENTS ---
@api_view(methods=("PATCH", "POST"))
def pay_instalment(request, pk):
    instalment = get_object_or_404(Instalment, pk=pk)
    instalment = services.pay_instalment(instalment, json_body(request), request.user)
    return instalment_dict(instalment)


@api_view(methods=("POST",))
def record_settlement_payment(request, pk):
    booking = get_object_or_404(Booking, pk=pk)
    booking = services.record_settlement_payment(booking, json_body(request), request.user)
    return booking_dict(booking, detail=True)


@api_view(methods=("POST",))
def supplier_settlement(request):
    allocation = services.settle_supplier_payment(json_body(request), request.user)
    return allocation_dict(allocation), 201


@api_view(methods=("POST",))
def supplier_payable_settlement(request):
    payable = services.settle_supplier_payable(json_body(request), request.user)
    return payable_dict(payable), 201


@api_view(methods=("POST",))
def customer_payable_settlement(request, pk):
    payable = get_object_or_404(CustomerPayable, pk=pk)
    payable = services.settle_customer_payable(payable, json_body(request), request.user)
    return payable_dict(payable), 201


# --- 5. CANCELLATIONS & CREDIT NOTES ---
@api_view(methods=("POST",))
def cancel_booking(request, pk):
    booking = get_object_or_404(Booking, pk=pk)
    cancellation = cancellations.cancel_booking(booking, json_body(request), request.user)
    return cancellation_dict(cancellation), 201


@api_view(methods=("POST",))
def passenger_refund(request, pk):
    cancellation = get_object_or_404(Cancellation, pk=pk)
    cancellation = cancellations.record_passenger_refund(
        cancellation, json_body(request), request.user
    )
    return cancellation_dict(cancellation), 201


@api_view()
def credit_notes_available(request, supplier):
    return [credit_note_dict(note) for note in available_credit_notes(supplier)]


# --- 6. INTERNAL INVOICING ---
@api_view(permission=can_manage_financials)
def invoice_report(request):
    rows = []
    for row in invoices.invoice_report():
        data = booking_dict(row["booking"])
        data.update(
            profit=row["profit"],
            commission_amount=row["commission_amount"],
            total_invoiced=row["total_invoiced"],
            remaining_commission=row["remaining_commission"],
            internal_invoices=[invoice_dict(i) for i in row["invoices"]],
        )
        rows.append(data)
    return rows


@api_view(methods=("POST",), permission=can_manage_financials)
def create_internal_invoice(request):
    invoice = invoices.create_internal_invoice(json_body(request), request.user)
    return invoice_dict(invoice), 201


@api_view(methods=("PUT",), permission=can_manage_financials)
def update_internal_invoice(request, pk):
    invoice = get_object_or_404(InternalInvoice, pk=pk)
    invoice = invoices.update_internal_invoice(invoice, json_body(request), request.user)
    return invoice_dict(invoice)


@api_view(permission=can_manage_financials)
def invoice_history(request, pk):
    booking = get_object_or_404(Booking, pk=pk)
    return [invoice_dict(i) for i in invoices.invoice_history(booking)]


@api_view(methods=("PUT",), permission=can_manage_financials)
def commission_amount(request, pk):
    booking = get_object_or_404(Booking, pk=pk)
    booking = invoices.update_commission_amount(booking, json_body(request), request.user)
    return booking_dict(booking)


# --- 7. REPORTS ---
@api_view()
def dashboard_stats(request):
    return FinanceStats.dashboard_stats()


@api_view()
def recent_bookings(request):
    latest, pending = FinanceStats.recent_bookings()
    return {
        "bookings": [booking_dict(b) for b in latest],
        "pending_bookings": [pending_booking_dict(p) for p in pending],
    }


@api_view()
def transactions(request):
    date_from, date_to = period_range(request)
    return FinanceStats.transactions(date_from, date_to)


@api_view()
def customer_deposits(request):
    rows = []
    for row in FinanceStats.customer_deposits():
        data = booking_dict(row["booking"])
        data.update(
            initial_deposit=row["initial_deposit"],
            received=row["received"],
            balance=row["balance"],
            instalments=[instalment_dict(i) for i in row["instalments"]],
            payment_history=row["payment_history"],
        )
        rows.append(data)
    return rows


@api_view()
def suppliers_info(request):
    summary = {}
    for name, entry in FinanceStats.suppliers_info().items():
        allocations = []
        for item in entry["allocations"]:
            allocation = item["allocation"]
            data = allocation_dict(allocation)
            booking = allocation.cost_item.booking
            data.update(
                pending_amount=item["pending_amount"],
                category=allocation.cost_item.category,
                booking_id=booking.pk,
                folder_no=booking.folder_no,
                ref_no=booking.ref_no,
                booking_status=booking.booking_status,
            )
            allocations.append(data)
        summary[name] = {
            "total_amount": entry["total_amount"],
            "total_paid": entry["total_paid"],
            "total_pending": entry["total_pending"],
            "total_available_credit": entry["total_available_credit"],
            "total_pending_payables": entry["total_pending_payables"],
            "allocations": allocations,
            "credit_notes": [
                credit_note_dict(n, with_usages=True) for n in entry["credit_notes"]
            ],
            "payables": [payable_dict(p) for p in entry["payables"]],
        }
    return summary


# --- 8. CALCULATOR PREVIEWS ---
@api_view(methods=("POST",))
def preview_financials(request):
    cleaned = validate(FinancialPreviewForm, json_body(request))
    return derive_financials(**cleaned)


@api_view(methods=("POST",))
def preview_instalment_plan(request):
    cleaned = validate(InstalmentPlanForm, json_body(request))
    return build_instalment_plan(
        cleaned["total"],
        cleaned["period"],
        cleaned["strategy"],
        count=cleaned.get("count"),
        custom=cleaned.get("custom"),
    )


@api_view(methods=("POST",))
def preview_interest(request):
    cleaned = validate(InterestPlanForm, json_body(request))
    months = cleaned.get("repayment_months") or repayment_months_between(
        timezone.now().date(), cleaned["last_due_date"]
    )
    return calculate_interest(
        cleaned["total_selling_price"], cleaned.get("deposit_paid"), months
    )
