"""
Auth API routes.

- POST /auth/register: create user, issue token
- POST /auth/login: verify credentials, issue token
- GET  /auth/me: caller identity
"""
from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from mzone.core.auth import get_current_user_id
from mzone.core.responses import success
from mzone.features.users.service import get_user, login_user, register_user

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


@router.post("/register", status_code=201)
def register(request: RegisterRequest):
    user, token = register_user(request.full_name or "", request.email or "", request.password or "")
    return JSONResponse(
        status_code=201,
        content=success({"token": token, "user": user.public()}, message="Registration successful"),
    )


@router.post("/login")
def login(request: LoginRequest):
    user, token = login_user(request.email or "", request.password or "")
    return success({"token": token, "user": user.public()}, message="Login successful")


@router.get("/me")
def me(user_id: str = Depends(get_current_user_id)):
    user = get_user(user_id)
    return success({"user": user.public()})
