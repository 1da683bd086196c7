"""Pydantic schemas for feed entities."""

from .author import AuthorInfo, KnownAuthor, UnknownAuthor
from .comment import Comment, CommentThread
from .post import Post
from .session import ActiveFriendSession, ActiveSessionRow

__all__ = [
    "ActiveFriendSession",
    "ActiveSessionRow",
    "AuthorInfo",
    "Comment",
    "CommentThread",
    "KnownAuthor",
    "Post",
    "UnknownAuthor",
]
