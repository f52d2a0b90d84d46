# bookings/permissions.py
"""
Permission helpers for Managers vs Agents.
Agents queue pending bookings and record payments; managers approve, void
and invoice.
"""


def is_manager(user):
    """Check if user is a Manager (superuser or in Managers group)."""
    if not user or not user.is_authenticated:
        return False
    return user.is_superuser or user.groups.filter(name="Managers").exists()


def is_agent(user):
    """Staff but not manager."""
    if not user or not user.is_authenticated:
        return False
    return user.is_staff and not is_manager(user)


def can_approve_bookings(user):
    """Approve or reject the queue and create confirmed bookings directly."""
    return is_manager(user) or user.has_perm("bookings.approve_bookings")


def can_void_bookings(user):
    return is_manager(user) or user.has_perm("bookings.void_bookings")


def can_manage_financials(user):
    """Commission amounts and internal invoices."""
    return is_manager(user) or user.has_perm("bookings.manage_financials")
