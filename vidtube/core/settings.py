from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = False
    app_name: str = "VidTube Accounts"
    api_v1_prefix: str = "/api/v1"
    database_url: str = "sqlite:///./vidtube.db"

    cors_origin: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["http://localhost:3000"])
    max_body_bytes: int = 16 * 1024

    jwt_algorithm: str = "HS256"
    access_token_secret: str = "change-me-access"
    access_token_expire_minutes: int = 60 * 24
    refresh_token_secret: str = "change-me-refresh"
    refresh_token_expire_days: int = 10
    cookie_secure: bool = True

    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    upload_temp_dir: str = "./public/temp"

    auth_rate_limit_window_seconds: int = 60
    auth_rate_limit_max_requests: int = 20

    @field_validator("cors_origin", mode="before")
    @classmethod
    def parse_cors_origin(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()
