import pytest
from fastapi import HTTPException

from sitejo.dependencies.auth import require_reviewer, role_required
from sitejo.users.models import Role

from tests.helpers import make_user


@pytest.mark.asyncio
async def test_role_required_allows_authorized_user():
    dependency = role_required(Role.ADMIN)
    user = make_user(Role.ADMIN, name="alice")
    result = await dependency(user)  # type: ignore[arg-type]
    assert result.name == "alice"


@pytest.mark.asyncio
async def test_role_required_rejects_unauthorized_user():
    dependency = role_required(Role.ADMIN)
    user = make_user(Role.STUDENT, name="bob")
    with pytest.raises(HTTPException) as exc:
        await dependency(user)  # type: ignore[arg-type]

    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"


@pytest.mark.asyncio
async def test_reviewer_accepts_lecturers_and_admins():
    for role in (Role.LECTURER, Role.ADMIN):
        assert (await require_reviewer(make_user(role))).role is role  # type: ignore[arg-type]
    with pytest.raises(HTTPException):
        await require_reviewer(make_user(Role.STUDENT))  # type: ignore[arg-type]
