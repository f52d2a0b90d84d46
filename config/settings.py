"""
Django settings for config project.
"""

import os
from pathlib import Path

import dj_database_url
import sentry_sdk
from django.urls import reverse_lazy
from sentry_sdk.integrations.django import DjangoIntegration

# Initialize Sentry
SENTRY_DSN = os.environ.get("SENTRY_DSN")
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[DjangoIntegration()],
        traces_sample_rate=float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", "1.0")),
        send_default_pii=True,
    )

# Build paths
BASE_DIR = Path(__file__).resolve().parent.parent

# Security
SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "django-insecure-fallback-key")
DEBUG = os.environ.get("DEBUG") == "True"
ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get("ALLOWED_HOSTS", "*").split(",")
    if host.strip()
]


# Application definition
INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    "simple_history",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django.contrib.humanize",
    "rangefilter",
    "bookings.apps.BookingsConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "simple_history.middleware.HistoryRequestMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"


# Database
DATABASES = {
    "default": dj_database_url.config(
        default=os.environ.get("DATABASE_URL", "sqlite:///db.sqlite3"), conn_max_age=600
    )
}


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"
    },
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


# Internationalization
LANGUAGE_CODE = "en-gb"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True


# Static files
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"
    },
}
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# --- LOGGING ---
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "{asctime} {levelname} {name}: {message}", "style": "{"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "bookings": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}


# --- BOOKING FINANCE ---
# Annual rate for beyond-30-days repayment plans (simple interest)
BOOKING_ANNUAL_INTEREST_RATE = os.environ.get("BOOKING_ANNUAL_INTEREST_RATE", "0.11")


# --- UNFOLD CONFIGURATION ---
UNFOLD = {
    "SITE_TITLE": "Booking Finance",
    "SITE_HEADER": "Back Office",
    "SITE_URL": "/",
    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": False,
        "navigation": [
            {
                "title": "Operations",
                "separator": True,
                "items": [
                    {
                        "title": "Pending Bookings",
                        "icon": "pending_actions",
                        "link": reverse_lazy("admin:bookings_pendingbooking_changelist"),
                        "permission": lambda request: request.user.has_perm(
                            "bookings.view_pendingbooking"
                        ),
                    },
                    {
                        "title": "Bookings",
                        "icon": "airplane_ticket",
                        "link": reverse_lazy("admin:bookings_booking_changelist"),
                        "permission": lambda request: request.user.has_perm(
                            "bookings.view_booking"
                        ),
                    },
                    {
                        "title": "Cancellations",
                        "icon": "event_busy",
                        "link": reverse_lazy("admin:bookings_cancellation_changelist"),
                        "permission": lambda request: request.user.has_perm(
                            "bookings.view_cancellation"
                        ),
                    },
                    {
                        "title": "Suppliers",
                        "icon": "store",
                        "link": reverse_lazy("admin:bookings_supplier_changelist"),
                        "permission": lambda request: request.user.has_perm(
                            "bookings.view_supplier"
                        ),
                    },
                ],
            },
            {
                "title": "Finance",
                "separator": True,
                "items": [
                    {
                        "title": "Credit Notes",
                        "icon": "receipt",
                        "link": reverse_lazy("admin:bookings_creditnote_changelist"),
                        "permission": lambda request: request.user.has_perm(
                            "bookings.view_creditnote"
                        ),
                    },
                    {
                        "title": "Supplier Payables",
                        "icon": "account_balance",
                        "link": reverse_lazy("admin:bookings_supplierpayable_changelist"),
                        "permission": lambda request: request.user.has_perm(
                            "bookings.view_supplierpayable"
                        ),
                    },
                    {
                        "title": "Customer Payables",
                        "icon": "payments",
                        "link": reverse_lazy("admin:bookings_customerpayable_changelist"),
                        "permission": lambda request: request.user.has_perm(
                            "bookings.view_customerpayable"
                        ),
                    },
                    {
                        "title": "Internal Invoices",
                        "icon": "receipt_long",
                        "link": reverse_lazy("admin:bookings_internalinvoice_changelist"),
                        "permission": lambda request: request.user.has_perm(
                            "bookings.view_internalinvoice"
                        ),
                    },
                ],
            },
        ],
    },
}

# --- SECURITY HARDENING ---
if not DEBUG:
    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = "DENY"
