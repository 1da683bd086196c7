"""Feed state services for the UpDown client."""

from .backend import BackendClient, BackendError, BackendResponseError
from .comments import CommentsController
from .feed_cache import FeedCache
from .feed_store import FeedStore, ImagePrefetcher, PrefetchPriority
from .friends import ActiveFriendsPoller, load_recommended_users
from .interactions import PostInteractions
from .known_good import KnownGoodCount, KnownGoodCounterCache
from .realtime import QueueChannel, RealtimeSocialService, parse_change
from .threads import CommentThreadBuilder

__all__ = [
    "ActiveFriendsPoller",
    "BackendClient",
    "BackendError",
    "BackendResponseError",
    "CommentThreadBuilder",
    "CommentsController",
    "FeedCache",
    "FeedStore",
    "ImagePrefetcher",
    "KnownGoodCount",
    "KnownGoodCounterCache",
    "PostInteractions",
    "PrefetchPriority",
    "QueueChannel",
    "RealtimeSocialService",
    "load_recommended_users",
    "parse_change",
]
