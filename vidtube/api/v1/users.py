from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from vidtube.api.deps import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_app_settings,
    get_current_user,
    get_media_uploader,
)
from vidtube.api.uploads import discard_staged, stage_upload
from vidtube.core.errors import success_response
from vidtube.core.rate_limit import enforce_auth_rate_limit
from vidtube.core.settings import Settings
from vidtube.db.session import get_db
from vidtube.models import User
from vidtube.schemas.auth import AuthResponse, LoginRequest, RefreshRequest, RegisterRequest, TokenPair
from vidtube.schemas.users import ChangePasswordRequest, UpdateAccountRequest
from vidtube.services import account_service
from vidtube.services.media_uploader import MediaUploader

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["users"])


def _set_session_cookies(response: JSONResponse, tokens: TokenPair, settings: Settings) -> JSONResponse:
    secure = settings.cookie_secure
    response.set_cookie(ACCESS_TOKEN_COOKIE, tokens.access_token, httponly=True, secure=secure)
    response.set_cookie(REFRESH_TOKEN_COOKIE, tokens.refresh_token, httponly=True, secure=secure)
    return response


def _clear_session_cookies(response: JSONResponse, settings: Settings) -> JSONResponse:
    secure = settings.cookie_secure
    response.delete_cookie(ACCESS_TOKEN_COOKIE, httponly=True, secure=secure)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, httponly=True, secure=secure)
    return response


@router.post("/register", dependencies=[Depends(enforce_auth_rate_limit)])
def register(
    full_name: str = Form(default="", alias="fullName"),
    email: str = Form(default=""),
    username: str = Form(default=""),
    password: str = Form(default=""),
    avatar: UploadFile | None = File(default=None),
    cover_image: UploadFile | None = File(default=None, alias="coverImage"),
    db: Session = Depends(get_db),
    uploader: MediaUploader = Depends(get_media_uploader),
    settings: Settings = Depends(get_app_settings),
):
    logger.info("Register endpoint hit username=%s", username.strip().lower())
    payload = RegisterRequest(full_name=full_name, email=email, username=username, password=password)
    avatar_path = stage_upload(avatar, settings.upload_temp_dir)
    cover_image_path = stage_upload(cover_image, settings.upload_temp_dir)
    try:
        user = account_service.register_user(
            db,
            uploader,
            payload,
            avatar_path=avatar_path,
            cover_image_path=cover_image_path,
        )
    finally:
        discard_staged(avatar_path, cover_image_path)
    return success_response(user.to_json(), "User registered successfully", status_code=status.HTTP_201_CREATED)


@router.post("/login", dependencies=[Depends(enforce_auth_rate_limit)])
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    logger.info("Login endpoint hit")
    user, tokens = account_service.login_user(db, payload.identifier, payload.password, settings=settings)
    body = AuthResponse(
        user=account_service.sanitize(user),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )
    return _set_session_cookies(success_response(body.to_json(), "User logged in successfully"), tokens, settings)


@router.post("/logout")
def logout(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
):
    logger.info("Logout endpoint hit user_id=%s", current_user.id)
    account_service.logout_user(db, current_user.id)
    return _clear_session_cookies(success_response({}, "User logged out"), settings)


@router.post("/refresh-token", dependencies=[Depends(enforce_auth_rate_limit)])
def refresh_token(
    request: Request,
    payload: RefreshRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    logger.info("Refresh token endpoint hit")
    incoming = request.cookies.get(REFRESH_TOKEN_COOKIE) or (payload.refresh_token if payload else None)
    _, tokens = account_service.refresh_access_token(db, incoming, settings=settings)
    body = {"accessToken": tokens.access_token, "refreshToken": tokens.refresh_token}
    return _set_session_cookies(success_response(body, "Access token refreshed"), tokens, settings)


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    logger.info("Change password endpoint hit user_id=%s", current_user.id)
    account_service.change_password(db, current_user.id, payload.old_password, payload.new_password)
    return success_response({}, "Password changed successfully")


@router.get("/current-user")
def read_current_user(current_user: User = Depends(get_current_user)):
    return success_response(account_service.get_current_user(current_user).to_json(), "Current user fetched")


@router.patch("/update-account")
def update_account(
    payload: UpdateAccountRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    logger.info("Update account endpoint hit user_id=%s", current_user.id)
    user = account_service.update_account_details(
        db, current_user.id, full_name=payload.full_name, email=payload.email
    )
    return success_response(user.to_json(), "Account details updated")


@router.patch("/avatar")
def update_avatar(
    avatar: UploadFile | None = File(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    uploader: MediaUploader = Depends(get_media_uploader),
    settings: Settings = Depends(get_app_settings),
):
    logger.info("Update avatar endpoint hit user_id=%s", current_user.id)
    avatar_path = stage_upload(avatar, settings.upload_temp_dir)
    try:
        user = account_service.update_avatar(db, uploader, current_user.id, avatar_path)
    finally:
        discard_staged(avatar_path)
    return success_response(user.to_json(), "Avatar updated")


@router.patch("/cover-image")
def update_cover_image(
    cover_image: UploadFile | None = File(default=None, alias="coverImage"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    uploader: MediaUploader = Depends(get_media_uploader),
    settings: Settings = Depends(get_app_settings),
):
    logger.info("Update cover image endpoint hit user_id=%s", current_user.id)
    cover_image_path = stage_upload(cover_image, settings.upload_temp_dir)
    try:
        user = account_service.update_cover_image(db, uploader, current_user.id, cover_image_path)
    finally:
        discard_staged(cover_image_path)
    return success_response(user.to_json(), "Cover image updated")


@router.get("/c/{username}")
def channel_profile(
    username: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    logger.info("Channel profile endpoint hit username=%s viewer_id=%s", username, current_user.id)
    channel = account_service.get_channel_profile(db, username, viewer_id=current_user.id)
    return success_response(channel.to_json(), "Channel fetched")


@router.get("/history")
def watch_history(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    logger.info("Watch history endpoint hit user_id=%s", current_user.id)
    videos = account_service.get_watch_history(db, current_user.id)
    return success_response([video.to_json() for video in videos], "Watch history fetched")
