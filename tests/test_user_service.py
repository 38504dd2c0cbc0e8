from __future__ import annotations

import pytest

from sitejo.core.exceptions import AuthenticationError, InputValidationError
from sitejo.users.models import Role
from sitejo.users.service import INVALID_CREDENTIALS, UserNotFoundError

from tests.helpers import TEST_PASSWORD


@pytest.mark.asyncio
@pytest.mark.parametrize("identifier", ["budi@students.unila.ac.id", "2115061001", "Budi Santoso"])
async def test_login_accepts_email_nim_or_name(user_service, people, identifier):
    user, issued = await user_service.login(identifier, TEST_PASSWORD)
    assert user.id == people.student.id
    assert issued.expires_in == 7 * 24 * 60 * 60
    assert (await user_service.authenticate(issued.token)).id == people.student.id


@pytest.mark.asyncio
async def test_login_rejects_bad_credentials(user_service, people):
    with pytest.raises(InputValidationError) as exc:
        await user_service.login("budi@students.unila.ac.id", "wrong-password")
    assert exc.value.errors == {"identifier": [INVALID_CREDENTIALS]}
    with pytest.raises(InputValidationError):
        await user_service.login("nobody", TEST_PASSWORD)


@pytest.mark.asyncio
async def test_new_login_revokes_previous_token(user_service, people):
    _, first = await user_service.login("ADMIN001", TEST_PASSWORD)
    _, second = await user_service.login("ADMIN001", TEST_PASSWORD)

    with pytest.raises(AuthenticationError):
        await user_service.authenticate(first.token)
    assert (await user_service.authenticate(second.token)).role is Role.ADMIN


@pytest.mark.asyncio
async def test_logout_revokes_token(user_service, people):
    _, issued = await user_service.login("ADMIN001", TEST_PASSWORD)
    await user_service.logout(issued.token)
    with pytest.raises(AuthenticationError, match="revoked"):
        await user_service.authenticate(issued.token)


@pytest.mark.asyncio
async def test_authenticate_rejects_garbage(user_service):
    with pytest.raises(AuthenticationError, match="Invalid token"):
        await user_service.authenticate("not-a-jwt")


@pytest.mark.asyncio
async def test_change_password_checks_current_and_confirmation(user_service, people):
    _, issued = await user_service.login("2115061001", TEST_PASSWORD)

    with pytest.raises(InputValidationError) as exc:
        await user_service.change_password(
            people.student, current_password="nope", password="newpassword1", password_confirmation="newpassword1"
        )
    assert "current_password" in exc.value.errors

    with pytest.raises(InputValidationError) as exc:
        await user_service.change_password(
            people.student,
            current_password=TEST_PASSWORD,
            password="newpassword1",
            password_confirmation="different1",
        )
    assert "password" in exc.value.errors

    await user_service.change_password(
        people.student,
        current_password=TEST_PASSWORD,
        password="newpassword1",
        password_confirmation="newpassword1",
    )
    with pytest.raises(AuthenticationError):
        await user_service.authenticate(issued.token)
    with pytest.raises(InputValidationError):
        await user_service.login("2115061001", TEST_PASSWORD)
    user, _ = await user_service.login("2115061001", "newpassword1")
    assert user.id == people.student.id


@pytest.mark.asyncio
async def test_update_profile_keeps_email_unique(user_service, people):
    with pytest.raises(InputValidationError) as exc:
        await user_service.update_profile(people.student, email=people.admin.email)
    assert "email" in exc.value.errors

    updated = await user_service.update_profile(people.student, phone="08123456789", name="Budi S.")
    assert updated.phone == "08123456789"
    assert updated.name == "Budi S."
    assert updated.email == people.student.email


@pytest.mark.asyncio
async def test_create_user_collects_every_error(user_service, people):
    with pytest.raises(InputValidationError) as exc:
        await user_service.create_user(
            name="Duplikat",
            email=people.student.email,
            nim_nip=people.lecturer.nim_nip,
            role=Role.STUDENT,
            password="short",
        )
    assert set(exc.value.errors) == {"email", "nim_nip", "password"}


@pytest.mark.asyncio
async def test_admin_user_management(user_service, people):
    lecturers = await user_service.list_lecturers()
    assert [lecturer.name for lecturer in lecturers] == ["Dr. Rahmat Hidayat", "Dr. Wulan Sari"]
    students = await user_service.list_users(role=Role.STUDENT)
    assert {student.id for student in students} == {people.student.id, people.other_student.id}

    promoted = await user_service.update_user(people.other_lecturer.id, role=Role.ADMIN)
    assert promoted.role is Role.ADMIN

    with pytest.raises(InputValidationError) as exc:
        await user_service.update_user(people.other_student.id, nim_nip=people.student.nim_nip)
    assert "nim_nip" in exc.value.errors

    with pytest.raises(InputValidationError):
        await user_service.delete_user(people.admin, people.admin.id)

    await user_service.delete_user(people.admin, people.other_student.id)
    with pytest.raises(UserNotFoundError):
        await user_service.get_user(people.other_student.id)
    with pytest.raises(UserNotFoundError):
        await user_service.delete_user(people.admin, people.other_student.id)


@pytest.mark.asyncio
async def test_ensure_admin_only_when_missing(user_service, people):
    assert (
        await user_service.ensure_admin(
            name="Second", email="second@sitejo.com", nim_nip="ADMIN002", password="password123"
        )
        is None
    )


@pytest.mark.asyncio
async def test_ensure_admin_bootstraps_first_admin(user_service):
    created = await user_service.ensure_admin(
        name="Administrator", email="admin@sitejo.com", nim_nip="ADMIN001", password="password123"
    )
    assert created is not None and created.role is Role.ADMIN
    user, _ = await user_service.login("admin@sitejo.com", "password123")
    assert user.id == created.id
