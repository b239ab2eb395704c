from enum import Enum


class UserRole(Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    RECEPTIONIST = "RECEPTIONIST"
    CUSTOMER = "CUSTOMER"


STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.RECEPTIONIST})
