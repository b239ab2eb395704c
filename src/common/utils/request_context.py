from typing import Optional, Tuple

from common.models.users import UserRole


def parse_role(role_raw) -> Optional[UserRole]:
    if not role_raw:
        return None
    try:
        return UserRole(str(role_raw).upper())
    except ValueError:
        return None


def get_caller(event) -> Tuple[str, Optional[UserRole]]:
    """``(user_id, role)`` set by the API Gateway authorizer; KeyError if absent."""
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    user_id = authorizer["user_id"]
    return user_id, parse_role(authorizer.get("role"))


def path_param(event, name: str) -> Optional[str]:
    return (event.get("pathParameters") or {}).get(name)
