import pytest

from app.core.exceptions import ForbiddenError
from app.core.permissions import (
    can_access_task,
    can_access_user,
    can_list_users,
    ensure_admin,
    ensure_task_access,
    ensure_user_access,
)
from app.core.security import Identity

ADMIN = Identity(user_id=1, role="admin")
MEMBER = Identity(user_id=2, role="member")


class TestTaskAccess:
    def test_owner_can_access(self):
        assert can_access_task(MEMBER, owner_id=2)

    def test_other_member_cannot_access(self):
        assert not can_access_task(MEMBER, owner_id=3)

    def test_admin_can_access_any_task(self):
        assert can_access_task(ADMIN, owner_id=3)

    def test_ensure_raises_with_message(self):
        with pytest.raises(ForbiddenError) as exc:
            ensure_task_access(MEMBER, 3, "You don't have permission to update this task")
        assert exc.value.status_code == 403
        assert exc.value.message == "You don't have permission to update this task"


class TestUserAccess:
    def test_self_access(self):
        assert can_access_user(MEMBER, 2)

    def test_member_cannot_read_others(self):
        assert not can_access_user(MEMBER, 1)
        with pytest.raises(ForbiddenError):
            ensure_user_access(MEMBER, 1)

    def test_admin_reads_anyone(self):
        assert can_access_user(ADMIN, 42)

    def test_only_admin_lists_users(self):
        assert can_list_users(ADMIN)
        assert not can_list_users(MEMBER)
        with pytest.raises(ForbiddenError):
            ensure_admin(MEMBER)


def test_unknown_role_is_treated_as_member():
    guest = Identity(user_id=5, role="guest")
    assert not guest.is_admin
    assert can_access_task(guest, 5)
    assert not can_access_task(guest, 6)
