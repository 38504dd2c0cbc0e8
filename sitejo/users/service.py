from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from sitejo.core.exceptions import AuthenticationError, InputValidationError, NotFoundError
from sitejo.security.passwords import DEFAULT_ROUNDS, hash_password, verify_password
from sitejo.security.tokens import IssuedToken, TokenCodec, hash_token

from .models import Role, User
from .repository import UserRepository

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "NPM/Email/Username atau password salah."
MIN_PASSWORD_LENGTH = 8


class UserNotFoundError(NotFoundError):
    """Raised when an operation targets a non-existent user."""


class UserService:
    """Authentication, profile and admin user management."""

    def __init__(
        self,
        repository: UserRepository,
        tokens: TokenCodec,
        *,
        password_rounds: int = DEFAULT_ROUNDS,
    ) -> None:
        self._repository = repository
        self._tokens = tokens
        self._password_rounds = password_rounds

    async def _hash(self, password: str) -> str:
        return await asyncio.to_thread(hash_password, password, rounds=self._password_rounds)

    async def login(self, identifier: str, password: str) -> tuple[User, IssuedToken]:
        """Verify credentials and issue a fresh token, revoking older ones."""

        found = await self._repository.find_credentials(identifier)
        if found is None:
            logger.warning("Login failed for unknown identifier")
            raise InputValidationError.for_field("identifier", INVALID_CREDENTIALS)
        user, password_hash = found
        if not await asyncio.to_thread(verify_password, password, password_hash):
            logger.warning("Login failed for user_id=%s", user.id)
            raise InputValidationError.for_field("identifier", INVALID_CREDENTIALS)

        issued = self._tokens.issue(user.id)
        await self._repository.replace_tokens(user.id, issued)
        logger.info("User logged in user_id=%s role=%s", user.id, user.role.value)
        return user, issued

    async def authenticate(self, token: str) -> User:
        """Resolve a bearer token to its (non-revoked) owner."""

        payload = self._tokens.decode(token)
        owner_id = await self._repository.token_owner(hash_token(token))
        if owner_id is None or owner_id != payload["sub"]:
            raise AuthenticationError("Token has been revoked")
        user = await self._repository.get_user(owner_id)
        if user is None:
            raise AuthenticationError("Unknown user")
        return user

    async def logout(self, token: str) -> None:
        await self._repository.revoke_token(hash_token(token))

    async def update_profile(
        self,
        user: User,
        *,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
    ) -> User:
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if phone is not None:
            changes["phone"] = phone
        if email is not None and email != user.email:
            if await self._repository.email_taken(email, exclude_id=user.id):
                raise InputValidationError.for_field("email", "The email has already been taken.")
            changes["email"] = email
        if not changes:
            return user
        updated = await self._repository.update_user(user.id, changes)
        if updated is None:
            raise UserNotFoundError(f"User {user.id} not found")
        return updated

    async def change_password(
        self,
        user: User,
        *,
        current_password: str,
        password: str,
        password_confirmation: str,
    ) -> None:
        """Replace the password and revoke every token of the user."""

        current_hash = await self._repository.get_password_hash(user.id)
        if current_hash is None:
            raise UserNotFoundError(f"User {user.id} not found")
        if not await asyncio.to_thread(verify_password, current_password, current_hash):
            raise InputValidationError.for_field("current_password", "Current password is incorrect")
        _check_new_password(password, password_confirmation)

        await self._repository.update_user(user.id, {"hashed_password": await self._hash(password)})
        revoked = await self._repository.revoke_user_tokens(user.id)
        logger.info("Password changed user_id=%s revoked_tokens=%d", user.id, revoked)

    async def list_users(self, *, role: Role | None = None) -> Sequence[User]:
        return await self._repository.list_users(role=role)

    async def list_lecturers(self) -> Sequence[User]:
        return await self._repository.list_lecturers()

    async def get_user(self, user_id: str) -> User:
        user = await self._repository.get_user(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def create_user(
        self,
        *,
        name: str,
        email: str,
        nim_nip: str,
        role: Role,
        password: str,
        phone: str | None = None,
    ) -> User:
        errors: dict[str, list[str]] = {}
        if await self._repository.email_taken(email):
            errors["email"] = ["The email has already been taken."]
        if await self._repository.nim_nip_taken(nim_nip):
            errors["nim_nip"] = ["The nim nip has already been taken."]
        if len(password) < MIN_PASSWORD_LENGTH:
            errors["password"] = [f"The password must be at least {MIN_PASSWORD_LENGTH} characters."]
        if errors:
            raise InputValidationError("The given data was invalid.", errors)

        user = await self._repository.create_user(
            name=name,
            email=email,
            nim_nip=nim_nip,
            role=role,
            phone=phone,
            hashed_password=await self._hash(password),
        )
        logger.info("User created user_id=%s role=%s", user.id, role.value)
        return user

    async def update_user(
        self,
        user_id: str,
        *,
        name: str | None = None,
        email: str | None = None,
        nim_nip: str | None = None,
        role: Role | None = None,
        phone: str | None = None,
        password: str | None = None,
    ) -> User:
        existing = await self.get_user(user_id)
        errors: dict[str, list[str]] = {}
        changes: dict[str, Any] = {}
        if email is not None and email != existing.email:
            if await self._repository.email_taken(email, exclude_id=user_id):
                errors["email"] = ["The email has already been taken."]
            changes["email"] = email
        if nim_nip is not None and nim_nip != existing.nim_nip:
            if await self._repository.nim_nip_taken(nim_nip, exclude_id=user_id):
                errors["nim_nip"] = ["The nim nip has already been taken."]
            changes["nim_nip"] = nim_nip
        if password is not None and len(password) < MIN_PASSWORD_LENGTH:
            errors["password"] = [f"The password must be at least {MIN_PASSWORD_LENGTH} characters."]
        if errors:
            raise InputValidationError("The given data was invalid.", errors)

        if name is not None:
            changes["name"] = name
        if role is not None:
            changes["role"] = role
        if phone is not None:
            changes["phone"] = phone
        if password is not None:
            changes["hashed_password"] = await self._hash(password)
        if not changes:
            return existing

        updated = await self._repository.update_user(user_id, changes)
        if updated is None:
            raise UserNotFoundError(f"User {user_id} not found")
        if role is not None and role is not existing.role:
            logger.info("User role changed user_id=%s %s -> %s", user_id, existing.role.value, role.value)
        return updated

    async def delete_user(self, actor: User, user_id: str) -> None:
        if actor.id == user_id:
            raise InputValidationError.for_field("id", "Cannot delete your own account")
        if not await self._repository.delete_user(user_id):
            raise UserNotFoundError(f"User {user_id} not found")
        logger.info("User deleted user_id=%s by=%s", user_id, actor.id)

    async def ensure_admin(self, *, name: str, email: str, nim_nip: str, password: str) -> User | None:
        """Create the first administrator when none exists yet."""

        if await self._repository.has_role(Role.ADMIN):
            return None
        user = await self.create_user(name=name, email=email, nim_nip=nim_nip, role=Role.ADMIN, password=password)
        logger.info("Bootstrap administrator created user_id=%s", user.id)
        return user


def _check_new_password(password: str, confirmation: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InputValidationError.for_field(
            "password", f"The password must be at least {MIN_PASSWORD_LENGTH} characters."
        )
    if password != confirmation:
        raise InputValidationError.for_field("password", "The password confirmation does not match.")
