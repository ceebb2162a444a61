from vidtube.models.subscription import Subscription
from vidtube.models.user import User
from vidtube.models.video import Video
from vidtube.models.watch_history import WatchHistoryEntry

__all__ = [
    "Subscription",
    "User",
    "Video",
    "WatchHistoryEntry",
]
