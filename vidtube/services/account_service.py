from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from vidtube.core.errors import AuthError, ConflictError, NotFoundError, ServerError, UploadError, ValidationError
from vidtube.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from vidtube.core.settings import Settings, get_settings
from vidtube.models import User
from vidtube.repositories import user_repository
from vidtube.schemas.auth import RegisterRequest, TokenPair
from vidtube.schemas.channels import ChannelProfile
from vidtube.schemas.users import UserPublic
from vidtube.schemas.videos import WatchedVideo
from vidtube.services.media_uploader import MediaUploader

logger = logging.getLogger(__name__)


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _require_user(db: Session, user_id: str) -> User:
    user = user_repository.get_by_id(db, user_id)
    if user is None:
        logger.warning("User not found user_id=%s", user_id)
        raise NotFoundError("User does not exist", code="user_not_found")
    return user


def _issue_tokens(user: User, settings: Settings | None = None) -> TokenPair:
    settings = settings or get_settings()
    access_token = create_access_token(
        user_id=user.id,
        email=user.email,
        username=user.username,
        full_name=user.full_name,
        settings=settings,
    )
    return TokenPair(
        access_token=access_token,
        refresh_token=create_refresh_token(user.id, settings=settings),
        expires_in=settings.access_token_expire_minutes * 60,
    )


def sanitize(user: User) -> UserPublic:
    return UserPublic.model_validate(user)


def register_user(
    db: Session,
    uploader: MediaUploader,
    payload: RegisterRequest,
    *,
    avatar_path: str | None,
    cover_image_path: str | None = None,
) -> UserPublic:
    if any(_is_blank(field) for field in (payload.full_name, payload.email, payload.username, payload.password)):
        raise ValidationError("All fields are required", code="fields_required")

    existing = user_repository.find_by_username_or_email(
        db, username=payload.username.strip(), email=payload.email.strip()
    )
    if existing is not None:
        logger.warning("Registration conflict username=%s", payload.username.strip().lower())
        raise ConflictError("User with same username or email already exists", code="user_exists")

    if not avatar_path:
        raise ValidationError("Avatar file is required", code="avatar_required")

    avatar = uploader.upload(avatar_path)
    cover_image = uploader.upload(cover_image_path) if cover_image_path else None
    if avatar is None:
        raise UploadError("Avatar file upload failed")

    # uploaded media is not removed if the insert below fails
    user = user_repository.create_user(
        db,
        username=payload.username,
        email=payload.email,
        full_name=payload.full_name,
        password_hash=hash_password(payload.password),
        avatar_url=avatar.url,
        cover_image_url=cover_image.url if cover_image else "",
    )

    created = user_repository.get_by_id(db, user.id)
    if created is None:
        raise ServerError("Something went wrong while registering the user")
    logger.info("User registered user_id=%s", created.id)
    return sanitize(created)


def login_user(
    db: Session,
    identifier: str,
    password: str,
    *,
    settings: Settings | None = None,
) -> tuple[User, TokenPair]:
    if _is_blank(identifier):
        raise ValidationError("Username or email is required", code="identifier_required")

    user = user_repository.find_by_identifier(db, identifier)
    if user is None:
        logger.warning("Login for unknown identifier")
        raise NotFoundError("User does not exist", code="user_not_found")

    if not verify_password(password, user.password_hash):
        logger.warning("Login rejected user_id=%s", user.id)
        raise AuthError("Invalid user credentials", code="invalid_credentials")

    tokens = _issue_tokens(user, settings)
    user_repository.set_refresh_token(db, user.id, tokens.refresh_token)
    logger.info("User logged in user_id=%s", user.id)
    return user, tokens


def logout_user(db: Session, user_id: str) -> None:
    user_repository.clear_refresh_token(db, user_id)
    logger.info("User logged out user_id=%s", user_id)


def refresh_access_token(
    db: Session,
    incoming_token: str | None,
    *,
    settings: Settings | None = None,
) -> tuple[User, TokenPair]:
    if _is_blank(incoming_token):
        raise AuthError("Unauthorized request", code="refresh_token_missing")

    try:
        claims = decode_refresh_token(incoming_token, settings=settings)
    except AuthError as exc:
        raise AuthError(exc.message, code="invalid_refresh_token") from exc

    user = user_repository.get_by_id(db, str(claims["sub"]))
    if user is None:
        logger.warning("Refresh token subject not found user_id=%s", claims["sub"])
        raise NotFoundError("Invalid refresh token", code="user_not_found")

    tokens = _issue_tokens(user, settings)
    if not user_repository.rotate_refresh_token(
        db, user.id, expected=incoming_token, replacement=tokens.refresh_token
    ):
        logger.warning("Refresh token reuse detected user_id=%s", user.id)
        raise AuthError("Refresh token is expired or used", code="invalid_refresh_token")

    logger.info("Access token refreshed user_id=%s", user.id)
    return user, tokens


def change_password(db: Session, user_id: str, old_password: str, new_password: str) -> None:
    if _is_blank(new_password):
        raise ValidationError("New password is required", code="password_required")

    user = _require_user(db, user_id)
    if not verify_password(old_password, user.password_hash):
        logger.warning("Password change rejected user_id=%s", user.id)
        raise AuthError("Invalid old password", code="invalid_password")

    user_repository.update_fields(db, user, password_hash=hash_password(new_password))
    logger.info("Password changed user_id=%s", user.id)


def get_current_user(user: User) -> UserPublic:
    return sanitize(user)


def update_account_details(
    db: Session,
    user_id: str,
    *,
    full_name: str | None = None,
    email: str | None = None,
) -> UserPublic:
    changes: dict[str, object] = {}
    if not _is_blank(full_name):
        changes["full_name"] = full_name.strip()
    if not _is_blank(email):
        changes["email"] = email.strip().lower()
    if not changes:
        raise ValidationError("Full name or email is required", code="fields_required")

    user = _require_user(db, user_id)
    user = user_repository.update_fields(db, user, **changes)
    logger.info("Account details updated user_id=%s fields=%s", user.id, sorted(changes))
    return sanitize(user)


def _replace_image(
    db: Session,
    uploader: MediaUploader,
    user_id: str,
    local_path: str | None,
    *,
    field: str,
    label: str,
) -> UserPublic:
    if not local_path:
        raise ValidationError(f"{label} file is missing", code=f"{field}_required")

    uploaded = uploader.upload(local_path)
    if uploaded is None or not uploaded.url:
        raise UploadError(f"Error while uploading {label.lower()}")

    user = _require_user(db, user_id)
    user = user_repository.update_fields(db, user, **{field: uploaded.url})
    logger.info("%s updated user_id=%s", label, user.id)
    return sanitize(user)


def update_avatar(db: Session, uploader: MediaUploader, user_id: str, local_path: str | None) -> UserPublic:
    return _replace_image(db, uploader, user_id, local_path, field="avatar_url", label="Avatar")


def update_cover_image(db: Session, uploader: MediaUploader, user_id: str, local_path: str | None) -> UserPublic:
    return _replace_image(db, uploader, user_id, local_path, field="cover_image_url", label="Cover image")


def get_channel_profile(db: Session, username: str | None, *, viewer_id: str | None = None) -> ChannelProfile:
    if _is_blank(username):
        raise ValidationError("Username is missing", code="username_required")

    row = user_repository.fetch_channel_profile(db, username, viewer_id=viewer_id)
    if row is None:
        logger.warning("Channel not found username=%s", username.strip().lower())
        raise NotFoundError("Channel does not exist", code="channel_not_found")
    return ChannelProfile.model_validate(row)


def get_watch_history(db: Session, user_id: str) -> list[WatchedVideo]:
    _require_user(db, user_id)
    rows = user_repository.fetch_watch_history(db, user_id)
    return [WatchedVideo.model_validate(row) for row in rows]
