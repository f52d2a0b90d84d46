# bookings/admin.py
import logging

from django.contrib import admin, messages
from django.utils.html import format_html
from unfold.admin import ModelAdmin
from unfold.contrib.filters.admin import RangeDateFilter

from . import services
from .exceptions import BookingError
from .models import (
    Booking,
    Cancellation,
    CostItem,
    CostItemSupplier,
    CreditNote,
    CustomerPayable,
    InitialPayment,
    Instalment,
    InternalInvoice,
    Passenger,
    PendingBooking,
    Supplier,
    SupplierPayable,
)
from .permissions import can_approve_bookings, can_manage_financials, is_manager
from .signals import recalculate_booking_totals

logger = logging.getLogger(__name__)


def money_badge(amount, positive="#d9534f", negative="#0275d8"):
    if amount > 0:
        return format_html('<b style="color:{};">{} Due</b>', positive, f"{amount:,.2f}")
    if amount == 0:
        return format_html('<b style="color:{};">✔ Settled</b>', "#5cb85c")
    return format_html(
        '<b style="color:{};">{} (Credit)</b>', negative, f"{-amount:,.2f}"
    )


# --- 1. SUPPORTING ACTORS ---
@admin.register(Supplier)
class SupplierAdmin(ModelAdmin):
    list_display = ("name", "contact")
    search_fields = ("name",)


# --- 2. INLINES (history is read-only; payments go through the API) ---
class ReadOnlyInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class InitialPaymentInline(ReadOnlyInline):
    model = InitialPayment
    fields = ("payment_date", "amount", "transaction_method")
    readonly_fields = fields
    verbose_name_plural = "📜 Initial Payments"


class CostItemInline(ReadOnlyInline):
    model = CostItem
    fields = ("category", "amount")
    readonly_fields = fields
    verbose_name_plural = "🧾 Cost Breakdown"


class InstalmentInline(ReadOnlyInline):
    model = Instalment
    fields = ("due_date", "amount", "status")
    readonly_fields = fields
    verbose_name_plural = "📅 Instalments"


class PassengerInline(ReadOnlyInline):
    model = Passenger
    fields = ("title", "first_name", "last_name", "category", "email")
    readonly_fields = fields
    verbose_name_plural = "👤 Passengers"


# --- 3. PENDING BOOKINGS ---
@admin.register(PendingBooking)
class PendingBookingAdmin(ModelAdmin):
    list_display = (
        "ref_no",
        "pax_name",
        "agent_name",
        "payment_method",
        "revenue",
        "received",
        "profit",
        "status",
        "created_at",
    )
    list_filter = ("status", "payment_method", ("created_at", RangeDateFilter))
    search_fields = ("ref_no", "pax_name", "pnr", "agent_name")
    readonly_fields = (
        "received",
        "balance",
        "profit",
        "prod_cost",
        "status",
        "reviewed_by",
        "reviewed_at",
        "approved_booking",
        "created_by",
    )
    inlines = [InitialPaymentInline, CostItemInline, InstalmentInline, PassengerInline]
    actions = ["approve_selected", "reject_selected"]

    def has_add_permission(self, request):
        return False

    def get_actions(self, request):
        actions = super().get_actions(request)
        if not can_approve_bookings(request.user):
            actions.pop("approve_selected", None)
            actions.pop("reject_selected", None)
        return actions

    def _run(self, request, queryset, operation, verb):
        done = 0
        for pending in queryset:
            try:
                operation(pending, request.user)
                done += 1
            except BookingError as exc:
                self.message_user(
                    request, f"{pending.ref_no}: {exc.message}", level=messages.WARNING
                )
        if done:
            self.message_user(request, f"✅ {done} pending booking(s) {verb}.")

    @admin.action(description="✅ Approve selected")
    def approve_selected(self, request, queryset):
        self._run(request, queryset, services.approve_pending_booking, "approved")

    @admin.action(description="❌ Reject selected")
    def reject_selected(self, request, queryset):
        self._run(request, queryset, services.reject_pending_booking, "rejected")


# --- 4. BOOKINGS ---
@admin.register(Booking)
class BookingAdmin(ModelAdmin):
    list_display = (
        "folder_no",
        "ref_no",
        "pax_name",
        "booking_type",
        "payment_method",
        "revenue",
        "profit",
        "status_badge",
        "balance_display",
    )
    list_filter = (
        "booking_status",
        "booking_type",
        "payment_method",
        ("pc_date", RangeDateFilter),
        ("created_at", RangeDateFilter),
    )
    search_fields = ("folder_no", "ref_no", "pax_name", "pnr")
    readonly_fields = (
        "folder_no",
        "booking_status",
        "prod_cost",
        "received",
        "balance",
        "profit",
        "original_booking",
        "status_before_void",
        "voided_at",
        "voided_by",
        "created_by",
        "created_at",
    )
    inlines = [InitialPaymentInline, CostItemInline, InstalmentInline, PassengerInline]
    actions = ["recalculate_totals"]

    @admin.display(description="Status")
    def status_badge(self, obj):
        colors = {
            "CONFIRMED": "green",
            "COMPLETED": "#0275d8",
            "PENDING": "orange",
            "CANCELLED": "#888",
            "VOID": "#888",
        }
        return format_html(
            '<span style="color:{}; font-weight:bold;">{}</span>',
            colors.get(obj.booking_status, "gray"),
            obj.get_booking_status_display(),
        )

    @admin.display(description="Balance")
    def balance_display(self, obj):
        return money_badge(obj.balance)

    def has_add_permission(self, request):
        # bookings come from approval, the API or a date change
        return False

    def has_delete_permission(self, request, obj=None):
        return super().has_delete_permission(request, obj) and is_manager(request.user)

    def get_readonly_fields(self, request, obj=None):
        """Cancelled and void bookings are read-only in full."""
        if obj and obj.is_locked:
            return [f.name for f in self.model._meta.fields]
        return list(super().get_readonly_fields(request, obj))

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        recalculate_booking_totals(obj)

    @admin.action(description="🔁 Recalculate totals")
    def recalculate_totals(self, request, queryset):
        for booking in queryset:
            recalculate_booking_totals(booking)
        logger.info("Recalculated %s booking(s) from admin", queryset.count())
        self.message_user(request, f"✅ {queryset.count()} booking(s) recalculated.")


@admin.register(CostItemSupplier)
class CostItemSupplierAdmin(ModelAdmin):
    list_display = (
        "supplier",
        "cost_item",
        "amount",
        "payment_method",
        "paid_amount",
        "pending_amount",
    )
    list_filter = ("payment_method", "supplier")
    search_fields = ("supplier__name", "cost_item__booking__folder_no")
    # the split is fixed when the booking is written; settlements go through the API
    readonly_fields = (
        "cost_item",
        "supplier",
        "amount",
        "payment_method",
        "first_method_amount",
        "second_method_amount",
        "paid_amount",
        "pending_amount",
    )

    def has_add_permission(self, request):
        return False


# --- 5. CANCELLATION OUTCOMES ---
@admin.register(Cancellation)
class CancellationAdmin(ModelAdmin):
    list_display = (
        "folder_no",
        "original_booking",
        "supplier_cancellation_fee",
        "admin_fee",
        "refund_to_passenger",
        "payable_by_customer",
        "credit_note_amount",
        "refund_status",
        "profit_or_loss",
    )
    list_filter = ("refund_status", ("created_at", RangeDateFilter))
    search_fields = ("folder_no", "original_booking__ref_no")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(CreditNote)
class CreditNoteAdmin(ModelAdmin):
    list_display = (
        "id",
        "supplier",
        "initial_amount",
        "remaining_amount",
        "status",
        "generated_from_cancellation",
        "created_at",
    )
    list_filter = ("status", "supplier", ("created_at", RangeDateFilter))
    search_fields = ("supplier__name",)
    readonly_fields = (
        "supplier",
        "initial_amount",
        "remaining_amount",
        "status",
        "generated_from_cancellation",
    )

    def has_add_permission(self, request):
        # credit notes are issued by cancellations only
        return False


class PayableAdmin(ModelAdmin):
    list_display = ("id", "total_amount", "paid_amount", "pending_amount", "status", "reason")
    list_filter = ("status", ("created_at", RangeDateFilter))
    readonly_fields = (
        "total_amount",
        "paid_amount",
        "pending_amount",
        "status",
        "created_from_cancellation",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return super().has_change_permission(request, obj) and can_manage_financials(
            request.user
        )


@admin.register(SupplierPayable)
class SupplierPayableAdmin(PayableAdmin):
    list_display = ("supplier",) + PayableAdmin.list_display
    search_fields = ("supplier__name",)
    readonly_fields = ("supplier",) + PayableAdmin.readonly_fields


@admin.register(CustomerPayable)
class CustomerPayableAdmin(PayableAdmin):
    list_display = ("booking",) + PayableAdmin.list_display
    search_fields = ("booking__folder_no", "booking__pax_name")
    readonly_fields = ("booking",) + PayableAdmin.readonly_fields


# --- 6. INTERNAL INVOICING ---
@admin.register(InternalInvoice)
class InternalInvoiceAdmin(ModelAdmin):
    list_display = ("id", "booking", "amount", "invoice_date", "created_by")
    list_filter = (("invoice_date", RangeDateFilter),)
    search_fields = ("booking__folder_no", "booking__ref_no")
    readonly_fields = ("created_by",)

    def has_module_permission(self, request):
        return can_manage_financials(request.user)

    def has_add_permission(self, request):
        # the commission ceiling is enforced by the invoicing endpoint
        return False
