"""Role-aware labels for message senders."""

from .models import ADMIN_ROLE, CUSTOMER_ROLE, PROVIDER_ROLE, normalize_role

SENDER_COLORS = {
    CUSTOMER_ROLE: "#1976d2",
    PROVIDER_ROLE: "#388e3c",
    ADMIN_ROLE: "#d32f2f",
}


def label_for(sender_type: str, viewer_role: str) -> str:
    """Returns how a message's sender is shown to a viewer of the given role.

    >>> label_for("service_provider", "customer")
    'Provider'
    >>> label_for("admin", "customer")
    'Shop Owner'
    >>> label_for("service_provider", "service_provider")
    'Me'
    >>> label_for("customer", "admin")
    'Customer'
    """
    sender = normalize_role(sender_type)
    viewer = normalize_role(viewer_role)

    if viewer == CUSTOMER_ROLE and sender == PROVIDER_ROLE:
        return "Provider"
    if viewer == CUSTOMER_ROLE and sender == ADMIN_ROLE:
        return "Shop Owner"
    if viewer in (PROVIDER_ROLE, ADMIN_ROLE) and sender == viewer:
        return "Me"
    if sender == PROVIDER_ROLE:
        return "Provider"
    return sender.capitalize()


def sender_color(sender_type: str) -> str:
    return SENDER_COLORS[normalize_role(sender_type)]
