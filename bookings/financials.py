# bookings/financials.py
"""
Pure booking arithmetic: profit/balance derivation, instalment plans and
interest for beyond-30-days repayment plans.

Nothing here touches the database, so the same functions back the live
preview endpoint and the authoritative values stored on save.
"""
import math
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings

from .constants import (
    ANNUAL_INTEREST_RATE,
    CENT,
    MONTHLY_INTERVAL_DAYS,
    TOLERANCE,
    WEEKLY_INTERVAL_DAYS,
    WEEKLY_WITHIN_30_MAX,
    WITHIN_30_HORIZON_DAYS,
    ZERO,
)
from .exceptions import ValidationFailed


def to_money(value, field="amount"):
    """Coerce user input to a cent-quantized Decimal. None counts as zero."""
    if value is None or value == "":
        return ZERO
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationFailed(f"Invalid {field}: {value!r} is not a number.")
    if not amount.is_finite():
        raise ValidationFailed(f"Invalid {field}: {value!r} is not a number.")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def amounts_match(left, right, tolerance=TOLERANCE):
    return abs(to_money(left) - to_money(right)) <= tolerance


# --- 1. PROFIT & BALANCE ---
def derive_financials(revenue, prod_cost, trans_fee, surcharge, received):
    """
    profit  = revenue - prod_cost - trans_fee - surcharge
    balance = revenue - received

    Negative results are kept (overpayment shows as a negative balance).
    """
    revenue = to_money(revenue, "revenue")
    profit = (
        revenue
        - to_money(prod_cost, "prod_cost")
        - to_money(trans_fee, "trans_fee")
        - to_money(surcharge, "surcharge")
    )
    balance = revenue - to_money(received, "received")
    return {"profit": profit, "balance": balance}


# --- 2. INTEREST (beyond 30 days) ---
def monthly_interest_rate():
    annual = Decimal(
        str(getattr(settings, "BOOKING_ANNUAL_INTEREST_RATE", ANNUAL_INTEREST_RATE))
    )
    return annual / Decimal("12")


def repayment_months_between(start, last_due_date):
    days = (last_due_date - start).days
    if days <= 0:
        return 1
    return max(1, math.ceil(days / MONTHLY_INTERVAL_DAYS))


def calculate_interest(total_selling_price, deposit_paid, repayment_months):
    """
    Simple interest on the balance left after the deposit:

    interest      = balance_after_deposit * (11% / 12) * months
    total_payable = balance_after_deposit + interest
    revenue       = deposit_paid + total_payable
    """
    total_selling_price = to_money(total_selling_price, "total_selling_price")
    deposit_paid = to_money(deposit_paid, "deposit_paid")
    try:
        months = int(repayment_months)
    except (TypeError, ValueError):
        raise ValidationFailed("Repayment period must be a whole number of months.")

    if total_selling_price <= 0:
        raise ValidationFailed("Total selling price must be greater than 0.")
    if deposit_paid < 0:
        raise ValidationFailed("Deposit paid cannot be negative.")
    if months <= 0:
        raise ValidationFailed("Repayment period must be greater than 0.")

    balance_after_deposit = total_selling_price - deposit_paid
    interest = (balance_after_deposit * monthly_interest_rate() * months).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
    total_payable = balance_after_deposit + interest
    return {
        "balance_after_deposit": balance_after_deposit,
        "repayment_months": months,
        "interest": interest,
        "total_payable": total_payable,
        "revenue": deposit_paid + total_payable,
        "monthly_instalment": (total_payable / months).quantize(
            CENT, rounding=ROUND_HALF_UP
        ),
    }


# --- 3. INSTALMENT PLANS ---
def _split_evenly(total, count):
    """Equal cent amounts; the last one takes the rounding remainder."""
    share = (total / count).quantize(CENT, rounding=ROUND_HALF_UP)
    amounts = [share] * (count - 1)
    amounts.append(total - share * (count - 1))
    return amounts


def _entry(due_date, amount):
    return {"due_date": due_date, "amount": amount, "status": "PENDING"}


def build_weekly_within_30(total, count, today=None):
    """
    1-4 weekly instalments at +7, +14, +21, +28 days.

    Returns an empty list when the configuration is not allowed (count out
    of range or a due date past today + 30 days).
    """
    today = today or date.today()
    total = to_money(total, "total")
    if total <= 0 or not 1 <= count <= WEEKLY_WITHIN_30_MAX:
        return []

    horizon = today + timedelta(days=WITHIN_30_HORIZON_DAYS)
    due_dates = [
        today + timedelta(days=WEEKLY_INTERVAL_DAYS * i) for i in range(1, count + 1)
    ]
    if any(d > horizon for d in due_dates):
        return []
    return [_entry(d, a) for d, a in zip(due_dates, _split_evenly(total, count))]


def build_fixed_interval_plan(total, count, interval_days, start=None):
    start = start or date.today()
    total = to_money(total, "total")
    if total <= 0:
        raise ValidationFailed("Instalment total must be greater than 0.")
    if count < 1:
        raise ValidationFailed("Number of instalments must be at least 1.")
    due_dates = [start + timedelta(days=interval_days * i) for i in range(1, count + 1)]
    return [_entry(d, a) for d, a in zip(due_dates, _split_evenly(total, count))]


def validate_custom_plan(total, entries, period, today=None):
    today = today or date.today()
    total = to_money(total, "total")
    if not entries:
        raise ValidationFailed("A custom plan needs at least one instalment.")

    plan = []
    for index, entry in enumerate(entries, start=1):
        due_date = entry.get("due_date")
        if not isinstance(due_date, date):
            raise ValidationFailed(f"Instalment {index} has no valid due date.")
        amount = to_money(entry.get("amount"), "instalment amount")
        if amount <= 0:
            raise ValidationFailed(f"Instalment {index} amount must be positive.")
        if period == "within30days" and due_date > today + timedelta(
            days=WITHIN_30_HORIZON_DAYS
        ):
            raise ValidationFailed(
                f"Instalment {index} is due after the 30 day limit ({due_date})."
            )
        plan.append(_entry(due_date, amount))

    planned = sum((p["amount"] for p in plan), ZERO)
    if not amounts_match(planned, total):
        raise ValidationFailed(
            f"Instalments total ({planned}) does not match the amount due ({total})."
        )
    return sorted(plan, key=lambda p: p["due_date"])


def build_instalment_plan(
    total, period, strategy, count=None, custom=None, today=None
):
    """Dispatch on period (within30days / beyond30) and strategy."""
    today = today or date.today()

    if strategy == "custom":
        return validate_custom_plan(total, custom or [], period, today)

    if count is None:
        raise ValidationFailed("Number of instalments is required.")

    if period == "within30days":
        if strategy != "weekly":
            raise ValidationFailed("Within 30 days plans can only be weekly or custom.")
        plan = build_weekly_within_30(total, count, today)
        if not plan:
            raise ValidationFailed(
                "Weekly plans within 30 days allow 1 to 4 instalments on or "
                "before the 30 day limit."
            )
        return plan

    if period == "beyond30":
        interval = {
            "weekly": WEEKLY_INTERVAL_DAYS,
            "monthly": MONTHLY_INTERVAL_DAYS,
        }.get(strategy)
        if interval is None:
            raise ValidationFailed(f"Unknown instalment strategy: {strategy}")
        return build_fixed_interval_plan(total, count, interval, today)

    raise ValidationFailed(f"Unknown repayment period: {period}")
