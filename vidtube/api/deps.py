from __future__ import annotations

import logging

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from vidtube.core.errors import AuthError
from vidtube.core.security import decode_access_token
from vidtube.core.settings import Settings
from vidtube.db.session import get_db
from vidtube.models import User
from vidtube.services.media_uploader import MediaUploader

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/users/login", auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(
    request: Request,
    bearer_token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> User:
    token = request.cookies.get(ACCESS_TOKEN_COOKIE) or bearer_token
    if not token:
        logger.warning("Protected route hit without access token path=%s", request.url.path)
        raise AuthError("Unauthorized request", code="access_token_missing")

    payload = decode_access_token(token, settings=settings)
    user = db.get(User, payload["sub"])
    if user is None:
        logger.warning("Token user_id=%s not found", payload["sub"])
        raise AuthError("Invalid access token", code="invalid_token")

    logger.debug("Resolved current user user_id=%s", user.id)
    return user


def get_media_uploader(request: Request) -> MediaUploader:
    uploader: MediaUploader | None = getattr(request.app.state, "media_uploader", None)
    if uploader is None:
        raise RuntimeError("Media uploader is not configured")
    return uploader
