from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from vidtube.core.errors import AuthError
from vidtube.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__time_cost=3,
    argon2__memory_cost=65536,
    argon2__parallelism=2,
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_password(password: str) -> str:
    logger.debug("Hashing password")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        is_valid = pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.warning("Stored password hash could not be identified")
        return False
    logger.debug("Password verification result=%s", is_valid)
    return is_valid


def create_access_token(
    *,
    user_id: str,
    email: str,
    username: str,
    full_name: str,
    expires_delta: timedelta | None = None,
    settings: Settings | None = None,
) -> str:
    settings = settings or get_settings()
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {
        "sub": user_id,
        "email": email,
        "username": username,
        "fullName": full_name,
        "type": ACCESS_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    logger.debug("Creating access token subject=%s expires_at=%s", user_id, expire.isoformat())
    return jwt.encode(payload, settings.access_token_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(
    user_id: str,
    *,
    expires_delta: timedelta | None = None,
    settings: Settings | None = None,
) -> str:
    settings = settings or get_settings()
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(days=settings.refresh_token_expire_days))
    # jti keeps tokens issued within the same second distinct
    payload = {
        "sub": user_id,
        "type": REFRESH_TOKEN_TYPE,
        "jti": secrets.token_hex(16),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    logger.debug("Creating refresh token subject=%s expires_at=%s", user_id, expire.isoformat())
    return jwt.encode(payload, settings.refresh_token_secret, algorithm=settings.jwt_algorithm)


def _decode(token: str, *, secret: str, algorithm: str, expected_type: str) -> dict[str, object]:
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError as exc:
        logger.warning("%s token expired", expected_type.capitalize())
        raise AuthError(f"{expected_type.capitalize()} token has expired", code="token_expired") from exc
    except JWTError as exc:
        logger.warning("%s token decode failed", expected_type.capitalize())
        raise AuthError(f"Invalid {expected_type} token", code="invalid_token") from exc

    if payload.get("type") != expected_type:
        logger.warning("Unexpected token type=%s expected=%s", payload.get("type"), expected_type)
        raise AuthError("Invalid token type", code="invalid_token")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        logger.warning("%s token has no subject", expected_type.capitalize())
        raise AuthError("Token payload is invalid", code="invalid_token")

    return payload


def decode_access_token(token: str, *, settings: Settings | None = None) -> dict[str, object]:
    settings = settings or get_settings()
    payload = _decode(
        token,
        secret=settings.access_token_secret,
        algorithm=settings.jwt_algorithm,
        expected_type=ACCESS_TOKEN_TYPE,
    )
    logger.debug("Access token decoded subject=%s", payload.get("sub"))
    return payload


def decode_refresh_token(token: str, *, settings: Settings | None = None) -> dict[str, object]:
    settings = settings or get_settings()
    payload = _decode(
        token,
        secret=settings.refresh_token_secret,
        algorithm=settings.jwt_algorithm,
        expected_type=REFRESH_TOKEN_TYPE,
    )
    logger.debug("Refresh token decoded subject=%s", payload.get("sub"))
    return payload
