from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from sitejo.api.schemas import Envelope, UserResponse
from sitejo.dependencies.auth import BearerToken, CurrentUser
from sitejo.dependencies.services import UserServiceDep

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email, NIM/NIP or name")
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    user: UserResponse
    token: str
    token_type: str = "Bearer"
    expires_in: int


class ProfileUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=20)
    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$", max_length=255)


class ChangePasswordRequest(BaseModel):
    current_password: str
    password: str = Field(..., min_length=8)
    password_confirmation: str


@router.post("/login", response_model=Envelope[LoginResponse])
async def login(payload: LoginRequest, users: UserServiceDep) -> Envelope[LoginResponse]:
    user, issued = await users.login(payload.identifier, payload.password)
    return Envelope(
        message="Login successful",
        data=LoginResponse(
            user=UserResponse.model_validate(user),
            token=issued.token,
            expires_in=issued.expires_in,
        ),
    )


@router.post("/logout", response_model=Envelope[None])
async def logout(token: BearerToken, _: CurrentUser, users: UserServiceDep) -> Envelope[None]:
    await users.logout(token)
    return Envelope(message="Logged out successfully")


@router.get("/me", response_model=Envelope[UserResponse])
async def me(user: CurrentUser) -> Envelope[UserResponse]:
    return Envelope(data=UserResponse.model_validate(user))


@router.put("/profile", response_model=Envelope[UserResponse])
async def update_profile(
    payload: ProfileUpdateRequest,
    user: CurrentUser,
    users: UserServiceDep,
) -> Envelope[UserResponse]:
    updated = await users.update_profile(user, name=payload.name, phone=payload.phone, email=payload.email)
    return Envelope(message="Profile updated successfully", data=UserResponse.model_validate(updated))


@router.put("/change-password", response_model=Envelope[None])
async def change_password(
    payload: ChangePasswordRequest,
    user: CurrentUser,
    users: UserServiceDep,
) -> Envelope[None]:
    await users.change_password(
        user,
        current_password=payload.current_password,
        password=payload.password,
        password_confirmation=payload.password_confirmation,
    )
    return Envelope(message="Password changed successfully. Please login again.")
