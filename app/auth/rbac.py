from enum import Enum
from typing import Set

from models.enums import UserRole


class Permission(str, Enum):
    """Fine-grained access control for fleet operations"""

    VIEW_FLEET = "view:fleet"
    MANAGE_VEHICLES = "manage:vehicles"
    MANAGE_DRIVERS = "manage:drivers"
    MANAGE_TRANSACTIONS = "manage:transactions"
    MANAGE_TRIPS = "manage:trips"
    VIEW_REPORTS = "view:reports"
    MANAGE_SUBSCRIPTION = "manage:subscription"


# Permission matrix - what each role can do
ROLE_PERMISSIONS: dict[UserRole, Set[Permission]] = {
    UserRole.OWNER: set(Permission),
    # Drivers sign in but do not manage the fleet
    UserRole.DRIVER: set(),
}


def has_permission(role: str, permission: Permission) -> bool:
    try:
        return permission in ROLE_PERMISSIONS[UserRole(role)]
    except ValueError:
        return False
