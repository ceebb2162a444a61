from __future__ import annotations

from pydantic import Field

from vidtube.schemas.base import CamelModel
from vidtube.schemas.users import UserPublic


class RegisterRequest(CamelModel):
    full_name: str = ""
    email: str = ""
    username: str = ""
    password: str = ""


class LoginRequest(CamelModel):
    username: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    password: str = Field(default="", max_length=128)

    @property
    def identifier(self) -> str:
        return (self.username or self.email or "").strip()


class RefreshRequest(CamelModel):
    refresh_token: str | None = Field(default=None, max_length=2048)


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResponse(CamelModel):
    user: UserPublic
    access_token: str
    refresh_token: str
