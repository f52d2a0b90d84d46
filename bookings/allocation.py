# bookings/allocation.py
"""
Supplier cost allocation.

A booking's production cost is broken into cost items, each split across
suppliers, and each supplier share is funded by one or two methods. Methods
paid at booking time (bank transfer, credit notes) count as paid; credit is
deferred and shows as pending until a settlement is recorded.
"""
from .constants import (
    COMBINED_METHOD_SEPARATOR,
    PAID_AT_BOOKING_METHODS,
    SUPPLIER_PAYMENT_METHODS,
    TOLERANCE,
    ZERO,
)
from .exceptions import ValidationFailed
from .financials import amounts_match, to_money

VALID_METHODS = {code for code, _ in SUPPLIER_PAYMENT_METHODS}


def method_components(payment_method):
    """'BANK_TRANSFER_AND_CREDIT' -> ('BANK_TRANSFER', 'CREDIT')."""
    if payment_method not in VALID_METHODS:
        raise ValidationFailed(f"Invalid supplier payment method: {payment_method}")
    return tuple(payment_method.split(COMBINED_METHOD_SEPARATOR))


def is_combined(payment_method):
    return len(method_components(payment_method)) == 2


def uses_credit_notes(payment_method):
    return "CREDIT_NOTES" in method_components(payment_method)


def split_supplier_amount(
    amount, payment_method, first_method_amount=None, second_method_amount=None
):
    """
    Return {"paid_amount", "pending_amount"} for one supplier share.

    Single methods put the whole amount on one side. Combined methods need
    both components > 0 and first + second == amount (within a cent); each
    component lands on the side its own method belongs to.
    """
    amount = to_money(amount, "supplier amount")
    if amount < 0:
        raise ValidationFailed("Supplier amount cannot be negative.")

    components = method_components(payment_method)

    if len(components) == 1:
        if components[0] in PAID_AT_BOOKING_METHODS:
            return {"paid_amount": amount, "pending_amount": ZERO}
        return {"paid_amount": ZERO, "pending_amount": amount}

    first = to_money(first_method_amount, "first method amount")
    second = to_money(second_method_amount, "second method amount")
    if first <= 0 or second <= 0:
        raise ValidationFailed(
            f"Both amounts for {payment_method} must be greater than 0."
        )
    if not amounts_match(first + second, amount):
        raise ValidationFailed(
            f"Split amounts ({first} + {second}) do not add up to the "
            f"supplier amount ({amount})."
        )

    paid = pending = ZERO
    for method, part in zip(components, (first, second)):
        if method in PAID_AT_BOOKING_METHODS:
            paid += part
        else:
            pending += part
    # keep paid + pending == amount exactly when the split drifted by a cent
    pending = amount - paid
    return {"paid_amount": paid, "pending_amount": pending}


def credit_note_cover_amount(
    amount, payment_method, first_method_amount=None, second_method_amount=None
):
    """Portion of a supplier share that has to be covered with credit notes."""
    components = method_components(payment_method)
    if "CREDIT_NOTES" not in components:
        return ZERO
    if len(components) == 1:
        if first_method_amount in (None, ""):
            return to_money(amount)
        return to_money(first_method_amount)
    return to_money(second_method_amount)


def validate_cost_breakdown(prod_cost, cost_items):
    """
    cost_items: [{"category", "amount", "suppliers": [{"supplier", "amount"}]}]

    Suppliers of each item must add up to the item, items must add up to
    the production cost.
    """
    prod_cost = to_money(prod_cost, "prod_cost")
    items_total = ZERO
    for item in cost_items:
        item_amount = to_money(item.get("amount"), "cost item amount")
        suppliers = item.get("suppliers") or []
        if not suppliers:
            raise ValidationFailed(
                f"Cost item '{item.get('category')}' has no supplier allocation."
            )
        supplier_total = sum(
            (to_money(s.get("amount"), "supplier amount") for s in suppliers), ZERO
        )
        if abs(supplier_total - item_amount) > TOLERANCE:
            raise ValidationFailed(
                f"Supplier amounts for '{item.get('category')}' ({supplier_total}) "
                f"do not match the cost item amount ({item_amount})."
            )
        items_total += item_amount

    if abs(items_total - prod_cost) > TOLERANCE:
        raise ValidationFailed(
            f"Cost items total ({items_total}) does not match the production "
            f"cost ({prod_cost})."
        )
    return items_total
