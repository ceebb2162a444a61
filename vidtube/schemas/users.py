from __future__ import annotations

from datetime import datetime

from pydantic import Field

from vidtube.schemas.base import CamelModel


class UserPublic(CamelModel):
    id: str
    username: str
    email: str
    full_name: str
    avatar_url: str
    cover_image_url: str = ""
    watch_history: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class UpdateAccountRequest(CamelModel):
    full_name: str | None = Field(default=None, max_length=128)
    email: str | None = Field(default=None, max_length=255)


class ChangePasswordRequest(CamelModel):
    old_password: str = Field(default="", max_length=128)
    new_password: str = Field(default="", max_length=128)
