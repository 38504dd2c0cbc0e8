from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from sitejo.db.models import AccessTokenTable, UserTable, ensure_datetime
from sitejo.security.tokens import IssuedToken

from .models import Role, User

_UPDATABLE_FIELDS = frozenset({"name", "email", "nim_nip", "role", "phone", "hashed_password"})


def to_user(row: UserTable) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        nim_nip=row.nim_nip,
        role=Role(row.role),
        phone=row.phone,
        created_at=ensure_datetime(row.created_at),
        updated_at=ensure_datetime(row.updated_at),
    )


async def load_users(session: AsyncSession, user_ids: Iterable[str | None]) -> dict[str, User]:
    """Fetch the given users in one query, keyed by id."""

    ids = {user_id for user_id in user_ids if user_id}
    if not ids:
        return {}
    result = await session.execute(select(UserTable).where(UserTable.id.in_(ids)))
    return {row.id: to_user(row) for row in result.scalars().all()}


class UserRepository:
    """Persistence for `users` and their `access_tokens`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_user(self, user_id: str) -> User | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, user_id)
            return to_user(row) if row is not None else None

    async def find_credentials(self, identifier: str) -> tuple[User, str] | None:
        """Resolve a login identifier (email, then NIM/NIP, then name)."""

        async with self._session_factory() as session:
            for column in (UserTable.email, UserTable.nim_nip, UserTable.name):
                result = await session.execute(
                    select(UserTable).where(column == identifier).order_by(UserTable.created_at.asc()).limit(1)
                )
                row = result.scalars().first()
                if row is not None:
                    return to_user(row), row.hashed_password
        return None

    async def get_password_hash(self, user_id: str) -> str | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, user_id)
            return row.hashed_password if row is not None else None

    async def list_users(self, *, role: Role | None = None) -> Sequence[User]:
        statement = select(UserTable).order_by(UserTable.created_at.desc())
        if role is not None:
            statement = statement.where(UserTable.role == role.value)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [to_user(row) for row in result.scalars().all()]

    async def list_lecturers(self) -> Sequence[User]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserTable).where(UserTable.role == Role.LECTURER.value).order_by(UserTable.name.asc())
            )
            return [to_user(row) for row in result.scalars().all()]

    async def has_role(self, role: Role) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(UserTable).where(UserTable.role == role.value)
            )
            return int(result.scalar_one()) > 0

    async def email_taken(self, email: str, *, exclude_id: str | None = None) -> bool:
        return await self._value_taken(UserTable.email, email, exclude_id)

    async def nim_nip_taken(self, nim_nip: str, *, exclude_id: str | None = None) -> bool:
        return await self._value_taken(UserTable.nim_nip, nim_nip, exclude_id)

    async def _value_taken(self, column: Any, value: str, exclude_id: str | None) -> bool:
        statement = select(func.count()).select_from(UserTable).where(column == value)
        if exclude_id is not None:
            statement = statement.where(UserTable.id != exclude_id)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return int(result.scalar_one()) > 0

    async def create_user(
        self,
        *,
        name: str,
        email: str,
        nim_nip: str,
        role: Role,
        hashed_password: str,
        phone: str | None = None,
    ) -> User:
        now = datetime.now(timezone.utc)
        row = UserTable(
            name=name,
            email=email,
            nim_nip=nim_nip,
            role=role.value,
            phone=phone,
            hashed_password=hashed_password,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
        return to_user(row)

    async def update_user(self, user_id: str, changes: Mapping[str, Any]) -> User | None:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported user fields: {sorted(unknown)}")
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(UserTable, user_id)
                if row is None:
                    return None
                for key, value in changes.items():
                    if isinstance(value, Role):
                        value = value.value
                    setattr(row, key, value)
                row.updated_at = datetime.now(timezone.utc)
            return to_user(row)

    async def delete_user(self, user_id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(UserTable, user_id)
                if row is None:
                    return False
                await session.execute(delete(AccessTokenTable).where(AccessTokenTable.user_id == user_id))
                await session.delete(row)
            return True

    async def store_token(self, user_id: str, issued: IssuedToken) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    AccessTokenTable(
                        id=issued.token_id,
                        user_id=user_id,
                        token_hash=issued.token_hash,
                        created_at=issued.issued_at,
                        expires_at=issued.expires_at,
                    )
                )

    async def replace_tokens(self, user_id: str, issued: IssuedToken) -> None:
        """Revoke every token of the user and store ``issued`` atomically."""

        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(delete(AccessTokenTable).where(AccessTokenTable.user_id == user_id))
                session.add(
                    AccessTokenTable(
                        id=issued.token_id,
                        user_id=user_id,
                        token_hash=issued.token_hash,
                        created_at=issued.issued_at,
                        expires_at=issued.expires_at,
                    )
                )

    async def token_owner(self, token_hash: str) -> str | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AccessTokenTable.user_id).where(AccessTokenTable.token_hash == token_hash)
            )
            return result.scalars().first()

    async def revoke_token(self, token_hash: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(AccessTokenTable).where(AccessTokenTable.token_hash == token_hash)
                )
            return bool(result.rowcount)

    async def revoke_user_tokens(self, user_id: str) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(delete(AccessTokenTable).where(AccessTokenTable.user_id == user_id))
            return int(result.rowcount or 0)
