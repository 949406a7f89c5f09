"""Per-resource authorization decisions layered on top of a verified ``Identity``."""

from app.core.exceptions import ForbiddenError
from app.core.security import Identity


def can_access_task(identity: Identity, owner_id: int) -> bool:
    return identity.is_admin or identity.user_id == owner_id


def can_access_user(identity: Identity, target_user_id: int) -> bool:
    return identity.is_admin or identity.user_id == target_user_id


def can_list_users(identity: Identity) -> bool:
    return identity.is_admin


def ensure_task_access(identity: Identity, owner_id: int, message: str = "Forbidden") -> None:
    if not can_access_task(identity, owner_id):
        raise ForbiddenError(message)


def ensure_user_access(identity: Identity, target_user_id: int, message: str = "Forbidden") -> None:
    if not can_access_user(identity, target_user_id):
        raise ForbiddenError(message)


def ensure_admin(identity: Identity) -> None:
    if not can_list_users(identity):
        raise ForbiddenError("Forbidden")
