from django.urls import path

from . import views

urlpatterns = [
    # --- Healthcheck ---
    path("healthz/", views.healthz, name="healthz"),
    # --- Pending bookings (approval queue) ---
    path("api/pending-bookings/", views.pending_bookings, name="pending_bookings"),
    path(
        "api/pending-bookings/<int:pk>/",
        views.pending_booking_detail,
        name="pending_booking_detail",
    ),
    path(
        "api/pending-bookings/<int:pk>/approve/",
        views.approve_pending_booking,
        name="approve_pending_booking",
    ),
    path(
        "api/pending-bookings/<int:pk>/reject/",
        views.reject_pending_booking,
        name="reject_pending_booking",
    ),
    # --- Bookings ---
    path("api/bookings/", views.bookings, name="bookings"),
    path("api/bookings/<int:pk>/", views.booking_detail, name="booking_detail"),
    path("api/bookings/<int:pk>/date-change/", views.date_change, name="date_change"),
    path("api/bookings/<int:pk>/cancel/", views.cancel_booking, name="cancel_booking"),
    path("api/bookings/<int:pk>/void/", views.void_booking, name="void_booking"),
    path("api/bookings/<int:pk>/unvoid/", views.unvoid_booking, name="unvoid_booking"),
    path(
        "api/bookings/<int:pk>/settlement-payment/",
        views.record_settlement_payment,
        name="record_settlement_payment",
    ),
    path(
        "api/bookings/<int:pk>/invoices/",
        views.invoice_history,
        name="invoice_history",
    ),
    path(
        "api/bookings/<int:pk>/commission/",
        views.commission_amount,
        name="commission_amount",
    ),
    # --- Payments & settlements ---
    path("api/instalments/<int:pk>/", views.pay_instalment, name="pay_instalment"),
    path(
        "api/suppliers/settlements/",
        views.supplier_settlement,
        name="supplier_settlement",
    ),
    path(
        "api/supplier-payables/settle/",
        views.supplier_payable_settlement,
        name="supplier_payable_settlement",
    ),
    path(
        "api/customer-payables/<int:pk>/settle/",
        views.customer_payable_settlement,
        name="customer_payable_settlement",
    ),
    path(
        "api/cancellations/<int:pk>/refund/",
        views.passenger_refund,
        name="passenger_refund",
    ),
    path(
        "api/credit-notes/available/<str:supplier>/",
        views.credit_notes_available,
        name="credit_notes_available",
    ),
    # --- Internal invoicing ---
    path("api/internal-invoices/", views.invoice_report, name="invoice_report"),
    path(
        "api/internal-invoices/create/",
        views.create_internal_invoice,
        name="create_internal_invoice",
    ),
    path(
        "api/internal-invoices/<int:pk>/",
        views.update_internal_invoice,
        name="update_internal_invoice",
    ),
    # --- Reports ---
    path("api/dashboard/stats/", views.dashboard_stats, name="dashboard_stats"),
    path("api/dashboard/recent/", views.recent_bookings, name="recent_bookings"),
    path("api/transactions/", views.transactions, name="transactions"),
    path(
        "api/customer-deposits/", views.customer_deposits, name="customer_deposits"
    ),
    path("api/suppliers-info/", views.suppliers_info, name="suppliers_info"),
    # --- Calculators ---
    path(
        "api/calculate/financials/",
        views.preview_financials,
        name="preview_financials",
    ),
    path(
        "api/calculate/instalment-plan/",
        views.preview_instalment_plan,
        name="preview_instalment_plan",
    ),
    path(
        "api/calculate/interest/", views.preview_interest, name="preview_interest"
    ),
]
