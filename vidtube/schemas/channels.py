from __future__ import annotations

from vidtube.schemas.base import CamelModel


class ChannelProfile(CamelModel):
    full_name: str
    username: str
    subscribers_count: int
    channels_subscribed_to_count: int
    avatar_url: str
    cover_image_url: str
    is_subscribed: bool
    email: str
