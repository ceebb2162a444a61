"""Data access for the ``users`` table and the read views built on it.

Every function takes the caller's ``Session``. Writes commit before
returning so each one lands as a single-row atomic update.
"""

from __future__ import annotations

import logging
from typing import TypedDict

from sqlalchemy import exists, func, literal, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from vidtube.core.errors import ConflictError
from vidtube.models import Subscription, User, Video, WatchHistoryEntry

logger = logging.getLogger(__name__)


class ChannelProfileRow(TypedDict):
    full_name: str
    username: str
    subscribers_count: int
    channels_subscribed_to_count: int
    avatar_url: str
    cover_image_url: str
    is_subscribed: bool
    email: str


class OwnerSummary(TypedDict):
    full_name: str
    username: str
    avatar_url: str


class WatchedVideoRow(TypedDict):
    id: str
    title: str
    description: str
    video_file_url: str
    thumbnail_url: str
    duration: float
    views: int
    is_published: bool
    created_at: object
    owner: OwnerSummary | None


def get_by_id(db: Session, user_id: str) -> User | None:
    return db.get(User, user_id)


def find_by_username_or_email(db: Session, *, username: str, email: str) -> User | None:
    return db.scalar(
        select(User).where(or_(User.username == username.lower(), User.email == email.lower())).limit(1)
    )


def find_by_identifier(db: Session, identifier: str) -> User | None:
    normalized = identifier.strip().lower()
    return db.scalar(select(User).where(or_(User.username == normalized, User.email == normalized)).limit(1))


def create_user(
    db: Session,
    *,
    username: str,
    email: str,
    full_name: str,
    password_hash: str,
    avatar_url: str,
    cover_image_url: str = "",
) -> User:
    user = User(
        username=username.strip().lower(),
        email=email.strip().lower(),
        full_name=full_name.strip(),
        password_hash=password_hash,
        avatar_url=avatar_url,
        cover_image_url=cover_image_url,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("User insert hit unique constraint username=%s", user.username)
        raise ConflictError("User with same username or email already exists", code="user_exists") from exc
    db.refresh(user)
    logger.info("User created user_id=%s username=%s", user.id, user.username)
    return user


def set_refresh_token(db: Session, user_id: str, token: str) -> None:
    db.execute(update(User).where(User.id == user_id).values(refresh_token=token))
    db.commit()
    logger.debug("Refresh token stored user_id=%s", user_id)


def rotate_refresh_token(db: Session, user_id: str, *, expected: str, replacement: str) -> bool:
    """Swap ``expected`` for ``replacement`` only if ``expected`` is still the stored token."""
    result = db.execute(
        update(User)
        .where(User.id == user_id, User.refresh_token == expected)
        .values(refresh_token=replacement)
        .execution_options(synchronize_session="fetch")
    )
    db.commit()
    rotated = result.rowcount == 1
    logger.debug("Refresh token rotation user_id=%s rotated=%s", user_id, rotated)
    return rotated


def clear_refresh_token(db: Session, user_id: str) -> None:
    db.execute(update(User).where(User.id == user_id).values(refresh_token=None))
    db.commit()
    logger.debug("Refresh token cleared user_id=%s", user_id)


def update_fields(db: Session, user: User, **values: object) -> User:
    for field, value in values.items():
        setattr(user, field, value)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("User update hit unique constraint user_id=%s fields=%s", user.id, sorted(values))
        raise ConflictError("Email is already in use", code="email_taken") from exc
    db.refresh(user)
    return user


def fetch_channel_profile(db: Session, username: str, *, viewer_id: str | None = None) -> ChannelProfileRow | None:
    subscribers = aliased(Subscription)
    subscribed_to = aliased(Subscription)
    viewer_subscription = aliased(Subscription)

    subscribers_count = (
        select(func.count(subscribers.id)).where(subscribers.channel_id == User.id).correlate(User).scalar_subquery()
    )
    channels_subscribed_to_count = (
        select(func.count(subscribed_to.id))
        .where(subscribed_to.subscriber_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )
    if viewer_id:
        is_subscribed = exists().where(
            viewer_subscription.channel_id == User.id,
            viewer_subscription.subscriber_id == viewer_id,
        ).correlate(User)
    else:
        is_subscribed = literal(False)

    row = db.execute(
        select(
            User.full_name,
            User.username,
            subscribers_count.label("subscribers_count"),
            channels_subscribed_to_count.label("channels_subscribed_to_count"),
            User.avatar_url,
            User.cover_image_url,
            is_subscribed.label("is_subscribed"),
            User.email,
        ).where(User.username == username.strip().lower())
    ).first()
    if row is None:
        return None

    logger.debug("Channel profile loaded username=%s subscribers=%s", row.username, row.subscribers_count)
    return {
        "full_name": row.full_name,
        "username": row.username,
        "subscribers_count": int(row.subscribers_count or 0),
        "channels_subscribed_to_count": int(row.channels_subscribed_to_count or 0),
        "avatar_url": row.avatar_url,
        "cover_image_url": row.cover_image_url or "",
        "is_subscribed": bool(row.is_subscribed),
        "email": row.email,
    }


def fetch_watch_history(db: Session, user_id: str) -> list[WatchedVideoRow]:
    owner = aliased(User)
    rows = db.execute(
        select(Video, owner.full_name, owner.username, owner.avatar_url)
        .join(WatchHistoryEntry, WatchHistoryEntry.video_id == Video.id)
        .outerjoin(owner, owner.id == Video.owner_id)
        .where(WatchHistoryEntry.user_id == user_id)
        .order_by(WatchHistoryEntry.position.asc())
    ).all()

    history: list[WatchedVideoRow] = []
    for video, owner_full_name, owner_username, owner_avatar_url in rows:
        owner_summary: OwnerSummary | None = None
        if owner_username is not None:
            owner_summary = {
                "full_name": owner_full_name,
                "username": owner_username,
                "avatar_url": owner_avatar_url,
            }
        history.append(
            {
                "id": video.id,
                "title": video.title,
                "description": video.description,
                "video_file_url": video.video_file_url,
                "thumbnail_url": video.thumbnail_url,
                "duration": video.duration,
                "views": video.views,
                "is_published": video.is_published,
                "created_at": video.created_at,
                "owner": owner_summary,
            }
        )
    logger.debug("Watch history loaded user_id=%s videos=%s", user_id, len(history))
    return history
