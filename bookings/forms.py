# bookings/forms.py
"""
Boundary validation for the JSON endpoints.

Each request body is bound to a Django form before any derivation runs.
Supplier allocations and bookings are tagged by their payment method and
validated by the form class registered for that variant.
"""
from django import forms

from .allocation import (
    credit_note_cover_amount,
    is_combined,
    split_supplier_amount,
    uses_credit_notes,
    validate_cost_breakdown,
)
from .constants import (
    BOOKING_PAYMENT_METHODS,
    BOOKING_TYPES,
    INSTALMENT_PAYMENT_METHODS,
    PASSENGER_CATEGORIES,
    PASSENGER_GENDERS,
    PASSENGER_TITLES,
    PLAN_PERIODS,
    PLAN_STRATEGIES,
    REFUND_TRANSACTION_METHODS,
    SUPPLIER_PAYMENT_METHODS,
    TOLERANCE,
    TRANSACTION_METHODS,
    ZERO,
)
from .exceptions import ValidationFailed
from .financials import derive_financials


def money(**kwargs):
    kwargs.setdefault("max_digits", 12)
    kwargs.setdefault("decimal_places", 2)
    return forms.DecimalField(**kwargs)


def form_messages(form):
    return {field: [str(e) for e in errors] for field, errors in form.errors.items()}


def bind(form_class, data, **kwargs):
    """Bind and validate a form, raising ValidationFailed with its errors."""
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object.")
    form = form_class(data=data, **kwargs)
    if not form.is_valid():
        errors = form_messages(form)
        first = next(iter(errors.values()))[0]
        raise ValidationFailed(first, errors=errors)
    return form


def validate(form_class, data, **kwargs):
    return bind(form_class, data, **kwargs).cleaned_data


def _bind_list(form_class_for, items, label, errors):
    """Validate a list of nested objects; errors are keyed 'label[i].field'."""
    cleaned = []
    if items in (None, ""):
        return cleaned
    if not isinstance(items, list):
        errors[label] = [f"{label} must be a list."]
        return cleaned
    for index, item in enumerate(items):
        key = f"{label}[{index}]"
        if not isinstance(item, dict):
            errors[key] = ["Expected an object."]
            continue
        form = form_class_for(item)(data=item)
        if form.is_valid():
            cleaned.append(form.cleaned_data)
        else:
            for field, messages in form_messages(form).items():
                errors[f"{key}.{field}"] = messages
    return cleaned


# --- 1. PAYMENT ROWS ---
class InitialPaymentForm(forms.Form):
    amount = money(min_value=ZERO)
    transaction_method = forms.ChoiceField(choices=TRANSACTION_METHODS)
    payment_date = forms.DateField()

    def clean_amount(self):
        amount = self.cleaned_data["amount"]
        if amount <= 0:
            raise forms.ValidationError("Payment amount must be greater than 0.")
        return amount


class PaymentForm(InitialPaymentForm):
    """A single money movement: instalment, settlement or payable payment."""


class InstalmentPaymentForm(PaymentForm):
    status = forms.CharField()

    def clean_status(self):
        status = self.cleaned_data["status"]
        if status != "PAID":
            raise forms.ValidationError(
                'Invalid status for payment action. Expected "PAID".'
            )
        return status


class SupplierSettlementForm(forms.Form):
    cost_item_supplier_id = forms.IntegerField()
    amount = money()
    transaction_method = forms.ChoiceField(choices=TRANSACTION_METHODS)
    settlement_date = forms.DateField()

    def clean_amount(self):
        amount = self.cleaned_data["amount"]
        if amount <= 0:
            raise forms.ValidationError("Settlement amount must be greater than 0.")
        return amount


class SupplierPayableSettlementForm(forms.Form):
    payable_id = forms.IntegerField()
    amount = money()
    transaction_method = forms.ChoiceField(choices=TRANSACTION_METHODS)
    settlement_date = forms.DateField()

    def clean_amount(self):
        amount = self.cleaned_data["amount"]
        if amount <= 0:
            raise forms.ValidationError("Amount must be a positive number.")
        return amount


class PassengerRefundForm(forms.Form):
    amount = money()
    transaction_method = forms.ChoiceField(choices=REFUND_TRANSACTION_METHODS)
    refund_date = forms.DateField()

    def clean_amount(self):
        amount = self.cleaned_data["amount"]
        if amount <= 0:
            raise forms.ValidationError("Refund amount must be a positive number.")
        return amount


# --- 2. SUPPLIER ALLOCATIONS (tagged by payment_method) ---
class CreditNoteSelectionForm(forms.Form):
    id = forms.IntegerField()
    amount_to_use = money()

    def clean_amount_to_use(self):
        amount = self.cleaned_data["amount_to_use"]
        if amount <= 0:
            raise forms.ValidationError("Credit note usage must be greater than 0.")
        return amount


class SupplierAllocationForm(forms.Form):
    """Single funding method: BANK_TRANSFER, CREDIT or CREDIT_NOTES."""

    supplier = forms.CharField(max_length=200)
    amount = money(min_value=ZERO)
    payment_method = forms.ChoiceField(choices=SUPPLIER_PAYMENT_METHODS)
    transaction_method = forms.ChoiceField(choices=TRANSACTION_METHODS, required=False)
    first_method_amount = money(required=False)
    second_method_amount = money(required=False)

    def clean(self):
        cleaned_data = super().clean()
        if self.errors:
            return cleaned_data
        try:
            split = split_supplier_amount(
                cleaned_data["amount"],
                cleaned_data["payment_method"],
                cleaned_data.get("first_method_amount"),
                cleaned_data.get("second_method_amount"),
            )
        except ValidationFailed as exc:
            raise forms.ValidationError(exc.message)
        cleaned_data.update(split)
        cleaned_data.setdefault("selected_credit_notes", [])
        return cleaned_data


class CombinedAllocationForm(SupplierAllocationForm):
    """Two funding methods; both component amounts are mandatory."""

    first_method_amount = money()
    second_method_amount = money()


class CreditNoteAllocationMixin(forms.Form):
    selected_credit_notes = forms.JSONField()

    def clean(self):
        cleaned_data = super().clean()
        if self.errors:
            return cleaned_data

        selections = cleaned_data.get("selected_credit_notes") or []
        if not isinstance(selections, list) or not selections:
            raise forms.ValidationError(
                "Select the credit notes that cover this supplier payment."
            )
        cleaned = []
        for index, selection in enumerate(selections):
            form = CreditNoteSelectionForm(
                data=selection if isinstance(selection, dict) else {}
            )
            if not form.is_valid():
                raise forms.ValidationError(
                    f"Invalid credit note selection #{index + 1}: "
                    f"{form_messages(form)}"
                )
            cleaned.append(form.cleaned_data)

        to_cover = credit_note_cover_amount(
            cleaned_data["amount"],
            cleaned_data["payment_method"],
            cleaned_data.get("first_method_amount"),
            cleaned_data.get("second_method_amount"),
        )
        applied = sum((c["amount_to_use"] for c in cleaned), ZERO)
        if abs(applied - to_cover) > TOLERANCE:
            raise forms.ValidationError(
                f"For supplier {cleaned_data['supplier']}, the applied credit notes "
                f"total ({applied}) does not match the required amount ({to_cover})."
            )
        cleaned_data["selected_credit_notes"] = cleaned
        cleaned_data["credit_note_cover"] = to_cover
        return cleaned_data


class CreditNoteAllocationForm(CreditNoteAllocationMixin, SupplierAllocationForm):
    pass


class CombinedCreditNoteAllocationForm(
    CreditNoteAllocationMixin, CombinedAllocationForm
):
    pass


def allocation_form_for(item):
    method = item.get("payment_method")
    if method not in {code for code, _ in SUPPLIER_PAYMENT_METHODS}:
        # the plain form reports the invalid choice
        return SupplierAllocationForm
    variants = {
        (False, False): SupplierAllocationForm,
        (True, False): CombinedAllocationForm,
        (False, True): CreditNoteAllocationForm,
        (True, True): CombinedCreditNoteAllocationForm,
    }
    return variants[(is_combined(method), uses_credit_notes(method))]


class CostItemForm(forms.Form):
    category = forms.CharField(max_length=100)
    amount = money(min_value=ZERO)
    suppliers = forms.JSONField()

    def clean(self):
        cleaned_data = super().clean()
        if self.errors:
            return cleaned_data
        errors = {}
        suppliers = _bind_list(
            allocation_form_for, cleaned_data.get("suppliers"), "suppliers", errors
        )
        if errors:
            raise forms.ValidationError(
                "; ".join(f"{k}: {' '.join(v)}" for k, v in errors.items())
            )
        if not suppliers:
            raise forms.ValidationError("Each cost item needs at least one supplier.")
        total = sum((s["amount"] for s in suppliers), ZERO)
        if abs(total - cleaned_data["amount"]) > TOLERANCE:
            raise forms.ValidationError(
                f"Supplier amounts for '{cleaned_data['category']}' ({total}) do "
                f"not match the cost item amount ({cleaned_data['amount']})."
            )
        cleaned_data["suppliers"] = suppliers
        return cleaned_data


# --- 3. INSTALMENTS & PASSENGERS ---
class InstalmentForm(forms.Form):
    due_date = forms.DateField()
    amount = money()
    status = forms.ChoiceField(
        choices=[("PENDING", "Pending"), ("OVERDUE", "Overdue")], required=False
    )

    def clean_amount(self):
        amount = self.cleaned_data["amount"]
        if amount <= 0:
            raise forms.ValidationError("Instalment amount must be greater than 0.")
        return amount

    def clean_status(self):
        return self.cleaned_data.get("status") or "PENDING"


class PassengerForm(forms.Form):
    title = forms.ChoiceField(choices=PASSENGER_TITLES)
    first_name = forms.CharField(max_length=100)
    middle_name = forms.CharField(max_length=100, required=False)
    last_name = forms.CharField(max_length=100)
    gender = forms.ChoiceField(choices=PASSENGER_GENDERS)
    email = forms.EmailField(required=False)
    contact_no = forms.CharField(max_length=40, required=False)
    nationality = forms.CharField(max_length=100, required=False)
    birthday = forms.DateField(required=False)
    category = forms.ChoiceField(choices=PASSENGER_CATEGORIES)


# --- 4. BOOKINGS (tagged by booking payment_method) ---
class BookingDetailsForm(forms.Form):
    ref_no = forms.CharField(max_length=50)
    pax_name = forms.CharField(max_length=200)
    agent_name = forms.CharField(max_length=100)
    team_name = forms.CharField(max_length=100)
    pnr = forms.CharField(max_length=20)
    airline = forms.CharField(max_length=100)
    from_to = forms.CharField(max_length=100)
    booking_type = forms.ChoiceField(choices=BOOKING_TYPES)
    payment_method = forms.ChoiceField(choices=BOOKING_PAYMENT_METHODS)
    pc_date = forms.DateField()
    issued_date = forms.DateField(required=False)
    travel_date = forms.DateField(required=False)
    num_pax = forms.IntegerField()
    revenue = money(required=False, min_value=ZERO)
    prod_cost = money(required=False, min_value=ZERO)
    trans_fee = money(required=False, min_value=ZERO)
    surcharge = money(required=False, min_value=ZERO)
    invoiced = forms.CharField(max_length=100, required=False)
    description = forms.CharField(required=False)

    allowed_booking_types = ("FRESH", "DATE_CHANGE")

    def clean_num_pax(self):
        num_pax = self.cleaned_data["num_pax"]
        if num_pax <= 0:
            raise forms.ValidationError(
                "Number of passengers must be a positive integer."
            )
        return num_pax

    def clean_booking_type(self):
        booking_type = self.cleaned_data["booking_type"]
        if booking_type not in self.allowed_booking_types:
            raise forms.ValidationError(
                f"Bookings of type {booking_type} cannot be created from this form."
            )
        return booking_type

    def clean(self):
        cleaned_data = super().clean()
        for field in ("revenue", "prod_cost", "trans_fee", "surcharge"):
            if cleaned_data.get(field) is None:
                cleaned_data[field] = ZERO
        travel_date = cleaned_data.get("travel_date")
        pc_date = cleaned_data.get("pc_date")
        if travel_date and pc_date and travel_date < pc_date:
            self.add_error("travel_date", "Travel date cannot be before the PC date.")
        return cleaned_data


class DateChangeDetailsForm(BookingDetailsForm):
    travel_date = forms.DateField()
    revenue = money(min_value=ZERO)

    allowed_booking_types = ("DATE_CHANGE",)


def clean_booking_payload(
    data, details_form=BookingDetailsForm, require_initial_payment=True
):
    """
    Validate a full booking body (details plus nested rows) and derive its
    totals. Nothing is written; the returned dict is ready for the services.
    """
    details = validate(details_form, data)
    errors = {}

    initial_payments = _bind_list(
        lambda item: InitialPaymentForm,
        data.get("initial_payments"),
        "initial_payments",
        errors,
    )
    cost_items = _bind_list(
        lambda item: CostItemForm, data.get("cost_items"), "cost_items", errors
    )
    instalments = _bind_list(
        lambda item: InstalmentForm, data.get("instalments"), "instalments", errors
    )
    passengers = _bind_list(
        lambda item: PassengerForm, data.get("passengers"), "passengers", errors
    )
    if errors:
        first = next(iter(errors.values()))[0]
        raise ValidationFailed(first, errors=errors)

    if require_initial_payment and not initial_payments:
        raise ValidationFailed("At least one initial payment must be provided.")

    # prod_cost comes from the breakdown; a client-sent figure must agree
    prod_cost = validate_cost_breakdown(
        details["prod_cost"] or sum((i["amount"] for i in cost_items), ZERO),
        cost_items,
    )
    received = sum((p["amount"] for p in initial_payments), ZERO)
    derived = derive_financials(
        details["revenue"],
        prod_cost,
        details["trans_fee"],
        details["surcharge"],
        received,
    )

    _check_instalments_for_method(details["payment_method"], instalments, derived)

    payload = dict(details)
    payload.update(
        prod_cost=prod_cost,
        received=received,
        initial_payments=initial_payments,
        cost_items=cost_items,
        instalments=instalments,
        passengers=passengers,
        **derived,
    )
    return payload


def _check_instalments_for_method(payment_method, instalments, derived):
    if payment_method in INSTALMENT_PAYMENT_METHODS:
        if not instalments:
            raise ValidationFailed(
                f"{payment_method} bookings need an instalment plan for the balance."
            )
        planned = sum((i["amount"] for i in instalments), ZERO)
        if abs(planned - derived["balance"]) > TOLERANCE:
            raise ValidationFailed(
                f"Instalments total ({planned}) does not match the balance "
                f"({derived['balance']})."
            )
    elif instalments:
        raise ValidationFailed(
            f"{payment_method} bookings cannot carry an instalment plan."
        )


class BookingUpdateForm(forms.Form):
    """Editable fields of a confirmed booking; everything is optional."""

    ref_no = forms.CharField(max_length=50, required=False)
    pax_name = forms.CharField(max_length=200, required=False)
    agent_name = forms.CharField(max_length=100, required=False)
    team_name = forms.CharField(max_length=100, required=False)
    pnr = forms.CharField(max_length=20, required=False)
    airline = forms.CharField(max_length=100, required=False)
    from_to = forms.CharField(max_length=100, required=False)
    issued_date = forms.DateField(required=False)
    travel_date = forms.DateField(required=False)
    num_pax = forms.IntegerField(required=False, min_value=1)
    revenue = money(required=False, min_value=ZERO)
    trans_fee = money(required=False, min_value=ZERO)
    surcharge = money(required=False, min_value=ZERO)
    invoiced = forms.CharField(max_length=100, required=False)
    description = forms.CharField(required=False)

    def changed_values(self):
        """Only the keys the client actually sent."""
        return {
            name: value
            for name, value in self.cleaned_data.items()
            if name in self.data
        }


# --- 5. CANCELLATION, VOID, INVOICES ---
class CancellationForm(forms.Form):
    supplier_cancellation_fee = money(min_value=ZERO)
    admin_fee = money(required=False, min_value=ZERO)
    refund_transaction_method = forms.ChoiceField(
        choices=REFUND_TRANSACTION_METHODS, required=False
    )

    def clean_admin_fee(self):
        return self.cleaned_data.get("admin_fee") or ZERO


class VoidForm(forms.Form):
    reason = forms.CharField()

    def clean_reason(self):
        reason = self.cleaned_data["reason"].strip()
        if not reason:
            raise forms.ValidationError("A reason is required to void a booking.")
        return reason


class InternalInvoiceForm(forms.Form):
    booking_id = forms.IntegerField()
    amount = money()
    invoice_date = forms.DateField()
    commission_amount = money(required=False, min_value=ZERO)

    def clean_amount(self):
        amount = self.cleaned_data["amount"]
        if amount <= 0:
            raise forms.ValidationError("Invoice amount must be greater than 0.")
        return amount


class InternalInvoiceUpdateForm(forms.Form):
    amount = money()
    invoice_date = forms.DateField()

    def clean_amount(self):
        amount = self.cleaned_data["amount"]
        if amount <= 0:
            raise forms.ValidationError("Invoice amount must be greater than 0.")
        return amount


class CommissionAmountForm(forms.Form):
    commission_amount = money(min_value=ZERO)


# --- 6. CALCULATOR PREVIEWS ---
class FinancialPreviewForm(forms.Form):
    revenue = money(required=False)
    prod_cost = money(required=False)
    trans_fee = money(required=False)
    surcharge = money(required=False)
    received = money(required=False)


class InstalmentPlanForm(forms.Form):
    total = money()
    period = forms.ChoiceField(choices=PLAN_PERIODS)
    strategy = forms.ChoiceField(choices=PLAN_STRATEGIES)
    count = forms.IntegerField(required=False, min_value=1)
    custom = forms.JSONField(required=False)

    def clean_custom(self):
        custom = self.cleaned_data.get("custom") or []
        if not isinstance(custom, list):
            raise forms.ValidationError("custom must be a list of instalments.")
        entries = []
        for index, item in enumerate(custom):
            form = InstalmentForm(data=item if isinstance(item, dict) else {})
            if not form.is_valid():
                raise forms.ValidationError(
                    f"Invalid custom instalment #{index + 1}: {form_messages(form)}"
                )
            entries.append(form.cleaned_data)
        return entries


class InterestPlanForm(forms.Form):
    total_selling_price = money()
    deposit_paid = money(required=False, min_value=ZERO)
    repayment_months = forms.IntegerField(required=False, min_value=1)
    last_due_date = forms.DateField(required=False)

    def clean(self):
        cleaned_data = super().clean()
        if not cleaned_data.get("repayment_months") and not cleaned_data.get(
            "last_due_date"
        ):
            raise forms.ValidationError(
                "Provide repayment_months or the last instalment due date."
            )
        return cleaned_data
