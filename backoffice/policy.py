"""
Declarative authorization policy.

Maps (resource, action) to the minimum role level required, optionally
narrowed to an explicit set of roles. Routers apply it
through ``require_policy`` and services re-check it with ``authorize``, so an
endpoint cannot skip the role check by accident. Pairs missing from the table
are denied.
"""

import logging
from typing import Optional

from backoffice.errors import AuthenticationRequired, AuthorizationDenied
from backoffice.models.user import ROLE_LEVELS, User

logger = logging.getLogger(__name__)

SUPERADMIN = ROLE_LEVELS["superadmin"]
ADMIN = ROLE_LEVELS["admin"]
DEPARTMENT_MANAGER = ROLE_LEVELS["department_manager"]
EMPLOYEE = ROLE_LEVELS["employee"]

CATALOG_RESOURCES = ("services", "pois", "vehicle_types", "vehicles", "rates", "experiences", "clients")

# "client" outranks department_manager by level but has no quote access
QUOTE_STAFF_ROLES = frozenset({"superadmin", "admin", "department_manager"})

POLICIES: dict[tuple[str, str], int] = {
    # Pricing adjustments
    ("price_adjustments", "read"): ADMIN,
    ("price_adjustments", "create"): ADMIN,
    ("price_adjustments", "delete"): ADMIN,
    # Invoice requests
    ("invoices", "read"): ADMIN,
    ("invoices", "complete"): ADMIN,
    ("invoices", "cancel"): ADMIN,
    # Quotes
    ("quotes", "read"): DEPARTMENT_MANAGER,
    ("quotes", "create"): DEPARTMENT_MANAGER,
    ("quotes", "update"): DEPARTMENT_MANAGER,
    ("quotes", "update_status"): DEPARTMENT_MANAGER,
    ("quotes", "delete"): ADMIN,
    ("quotes", "request_invoice"): DEPARTMENT_MANAGER,
    ("quotes", "receipt"): DEPARTMENT_MANAGER,
    ("quotes", "receipt_payment_info"): ADMIN,
    ("quotes", "cancel_reservation"): DEPARTMENT_MANAGER,
    ("quotes", "available_services"): DEPARTMENT_MANAGER,
}

for _resource in CATALOG_RESOURCES:
    POLICIES[(_resource, "read")] = EMPLOYEE
    POLICIES[(_resource, "create")] = ADMIN
    POLICIES[(_resource, "update")] = ADMIN
    POLICIES[(_resource, "toggle_status")] = ADMIN
    POLICIES[(_resource, "delete")] = ADMIN

# Pairs further limited to an explicit role set on top of the level check
ROLE_RESTRICTIONS: dict[tuple[str, str], frozenset[str]] = {
    pair: QUOTE_STAFF_ROLES for pair in POLICIES if pair[0] == "quotes"
}


def required_level(resource: str, action: str) -> Optional[int]:
    return POLICIES.get((resource, action))


def is_allowed(user: Optional[User], resource: str, action: str) -> bool:
    level = required_level(resource, action)
    if user is None or level is None:
        return False
    allowed_roles = ROLE_RESTRICTIONS.get((resource, action))
    if allowed_roles is not None and user.role not in allowed_roles:
        return False
    return user.level >= level


def authorize(user: Optional[User], resource: str, action: str) -> User:
    """Raise unless ``user`` may perform ``action`` on ``resource``."""
    if user is None:
        raise AuthenticationRequired()
    if not is_allowed(user, resource, action):
        logger.warning(
            f"Access denied to {resource}:{action}",
            extra={"actor_id": str(user.id), "role": user.role, "resource": resource},
        )
        raise AuthorizationDenied()
    return user
