from __future__ import annotations

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from sitejo.api.schemas import Envelope, UserResponse
from sitejo.dependencies.auth import AdminUser
from sitejo.dependencies.services import UserServiceDep
from sitejo.users.models import Role

router = APIRouter(prefix="/users", tags=["users"])

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"


class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., pattern=_EMAIL_PATTERN, max_length=255)
    nim_nip: str = Field(..., min_length=1, max_length=50)
    role: Role
    phone: str | None = Field(default=None, max_length=20)
    password: str = Field(..., min_length=8)


class UserUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, pattern=_EMAIL_PATTERN, max_length=255)
    nim_nip: str | None = Field(default=None, min_length=1, max_length=50)
    role: Role | None = None
    phone: str | None = Field(default=None, max_length=20)
    password: str | None = Field(default=None, min_length=8)


@router.get("", response_model=Envelope[list[UserResponse]])
async def list_users(
    users: UserServiceDep,
    _: AdminUser,
    role: Role | None = Query(default=None),
) -> Envelope[list[UserResponse]]:
    result = await users.list_users(role=role)
    return Envelope(data=[UserResponse.model_validate(user) for user in result])


@router.post("", response_model=Envelope[UserResponse], status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreateRequest, users: UserServiceDep, _: AdminUser) -> Envelope[UserResponse]:
    user = await users.create_user(
        name=payload.name,
        email=payload.email,
        nim_nip=payload.nim_nip,
        role=payload.role,
        phone=payload.phone,
        password=payload.password,
    )
    return Envelope(message="User created successfully", data=UserResponse.model_validate(user))


@router.get("/{user_id}", response_model=Envelope[UserResponse])
async def get_user(user_id: str, users: UserServiceDep, _: AdminUser) -> Envelope[UserResponse]:
    user = await users.get_user(user_id)
    return Envelope(data=UserResponse.model_validate(user))


@router.put("/{user_id}", response_model=Envelope[UserResponse])
async def update_user(
    user_id: str,
    payload: UserUpdateRequest,
    users: UserServiceDep,
    _: AdminUser,
) -> Envelope[UserResponse]:
    user = await users.update_user(
        user_id,
        name=payload.name,
        email=payload.email,
        nim_nip=payload.nim_nip,
        role=payload.role,
        phone=payload.phone,
        password=payload.password,
    )
    return Envelope(message="User updated successfully", data=UserResponse.model_validate(user))


@router.delete("/{user_id}", response_model=Envelope[None])
async def delete_user(user_id: str, users: UserServiceDep, admin: AdminUser) -> Envelope[None]:
    await users.delete_user(admin, user_id)
    return Envelope(message="User deleted successfully")
