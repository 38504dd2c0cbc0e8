from __future__ import annotations

from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from sitejo.documents.service import DocumentService
from sitejo.documents.storage import LocalFileStorage
from sitejo.security.tokens import TokenCodec
from sitejo.tickets.numbering import LetterNumberGenerator
from sitejo.tickets.repository import TicketRepository
from sitejo.tickets.service import TicketService
from sitejo.users.models import Role
from sitejo.users.repository import UserRepository
from sitejo.users.service import UserService

from tests.helpers import TEST_PASSWORD, FrozenClock

TEST_SECRET = "test-secret-key"


@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    # One shared connection so every session sees the same in-memory database.
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "storage")


@pytest.fixture
def user_service(session_factory) -> UserService:
    return UserService(UserRepository(session_factory), TokenCodec(TEST_SECRET), password_rounds=4)


@pytest.fixture
def ticket_repository(session_factory, engine, clock) -> TicketRepository:
    return TicketRepository(session_factory, engine=engine, clock=clock)


@pytest.fixture
def ticket_service(ticket_repository, storage, clock) -> TicketService:
    return TicketService(
        ticket_repository,
        letter_numbers=LetterNumberGenerator(clock=clock),
        storage=storage,
        clock=clock,
    )


@pytest.fixture
def document_service(ticket_repository, storage, clock) -> DocumentService:
    return DocumentService(ticket_repository, storage, max_upload_bytes=1024, clock=clock)


@pytest_asyncio.fixture
async def people(user_service: UserService) -> SimpleNamespace:
    """One account per role, plus a second student and lecturer."""

    async def create(name: str, email: str, nim_nip: str, role: Role):
        return await user_service.create_user(
            name=name,
            email=email,
            nim_nip=nim_nip,
            role=role,
            password=TEST_PASSWORD,
        )

    return SimpleNamespace(
        student=await create("Budi Santoso", "budi@students.unila.ac.id", "2115061001", Role.STUDENT),
        other_student=await create("Sari Dewi", "sari@students.unila.ac.id", "2115061002", Role.STUDENT),
        lecturer=await create("Dr. Rahmat Hidayat", "rahmat@eng.unila.ac.id", "197001012000031001", Role.LECTURER),
        other_lecturer=await create("Dr. Wulan Sari", "wulan@eng.unila.ac.id", "197502022001122002", Role.LECTURER),
        admin=await create("Administrator", "admin@sitejo.com", "ADMIN001", Role.ADMIN),
    )
