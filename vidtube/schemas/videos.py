from __future__ import annotations

from datetime import datetime

from vidtube.schemas.base import CamelModel


class VideoOwner(CamelModel):
    full_name: str
    username: str
    avatar_url: str


class WatchedVideo(CamelModel):
    id: str
    title: str
    description: str
    video_file_url: str
    thumbnail_url: str
    duration: float
    views: int
    is_published: bool
    created_at: datetime
    owner: VideoOwner | None = None
