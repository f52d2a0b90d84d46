# bookings/credit_notes.py
"""
Supplier credit notes: issued from cancellations, spent on later bookings
with the same supplier.
"""
import logging
from collections import defaultdict

from .constants import ZERO
from .exceptions import NotFound, ValidationFailed
from .models import CreditNote, CreditNoteUsage
from .signals import recalculate_credit_note

logger = logging.getLogger(__name__)


def available_credit_notes(supplier_name):
    """Notes of this supplier that still have money on them, newest first."""
    return (
        CreditNote.objects.filter(
            supplier__name=supplier_name,
            status__in=["AVAILABLE", "PARTIALLY_USED"],
            remaining_amount__gt=ZERO,
        )
        .select_related("supplier", "generated_from_cancellation")
        .order_by("-created_at", "-id")
    )


def issue_credit_note(supplier, amount, cancellation=None):
    note = CreditNote.objects.create(
        supplier=supplier,
        initial_amount=amount,
        remaining_amount=amount,
        status="AVAILABLE",
        generated_from_cancellation=cancellation,
    )
    logger.info("Issued credit note %s to %s for %s", note.pk, supplier, amount)
    return note


def reserve_credit_notes(cost_items):
    """
    Lock every credit note selected anywhere in the cost breakdown and check
    it belongs to the right supplier and has enough left. Uses of the same
    note are summed across the whole request.

    Returns {note_id: CreditNote}.
    """
    requested = defaultdict(lambda: ZERO)
    owners = {}
    for item in cost_items:
        for share in item["suppliers"]:
            for selection in share.get("selected_credit_notes") or []:
                note_id = selection["id"]
                requested[note_id] += selection["amount_to_use"]
                owners.setdefault(note_id, set()).add(share["supplier"].strip())

    if not requested:
        return {}

    notes = {
        note.pk: note
        for note in CreditNote.objects.select_for_update()
        .select_related("supplier")
        .filter(pk__in=list(requested))
    }
    for note_id, amount in requested.items():
        note = notes.get(note_id)
        if note is None:
            raise NotFound(f"Credit note {note_id} not found.")
        if owners[note_id] != {note.supplier.name}:
            raise ValidationFailed(
                f"Credit note {note_id} belongs to {note.supplier.name} and cannot "
                f"pay {', '.join(sorted(owners[note_id]))}."
            )
        if amount > note.remaining_amount:
            logger.warning(
                "Rejected credit note %s: requested %s, remaining %s",
                note_id,
                amount,
                note.remaining_amount,
            )
            raise ValidationFailed(
                f"Credit note {note_id} has only {note.remaining_amount} left; "
                f"{amount} was requested."
            )
    return notes


def consume_credit_notes(allocation, selections, notes):
    """Record one usage per selection against a supplier allocation."""
    usages = []
    for selection in selections:
        usages.append(
            CreditNoteUsage.objects.create(
                credit_note=notes[selection["id"]],
                used_on=allocation,
                amount_used=selection["amount_to_use"],
            )
        )
    return usages


def release_credit_notes(owner):
    """Drop the usages made by a booking's allocations and restore the notes."""
    usages = CreditNoteUsage.objects.filter(
        **owner.child_filter("used_on__cost_item__")
    )
    note_ids = set(usages.values_list("credit_note_id", flat=True))
    if not note_ids:
        return 0
    count, _ = usages.delete()
    for note in CreditNote.objects.select_for_update().filter(pk__in=note_ids):
        recalculate_credit_note(note)
    logger.info("Released %s credit note usage(s) from %s", count, owner)
    return count


def covered_amount(allocation):
    """Total paid with credit notes for one supplier allocation."""
    return sum((u.amount_used for u in allocation.credit_note_usages.all()), ZERO)

