"""Comment-related Pydantic schemas."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from updown_feed.schemas.author import AuthorInfo, UnknownAuthor, author_from_profile
from updown_feed.schemas.post import aggregate_count


class Comment(BaseModel):
    """A comment on a post, or a reply when ``parent_comment_id`` is set."""

    id: str
    post_id: str = Field(validation_alias=AliasChoices("post_id", "workout_post_id"))
    user_id: str
    content: str
    parent_comment_id: str | None = None
    like_count: int = Field(0, ge=0)
    is_liked_by_current_user: bool = False
    created_at: str
    author: AuthorInfo = Field(default_factory=UnknownAuthor)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _flatten_join_rows(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        likes = data.pop("comment_likes", None)
        if "like_count" not in data and likes is not None:
            data["like_count"] = aggregate_count(likes)

        profiles = data.pop("profiles", None)
        if "author" not in data and profiles is not None:
            data["author"] = author_from_profile(profiles)

        if data.get("like_count") is None:
            data.pop("like_count", None)
        return data

    @property
    def is_root(self) -> bool:
        return self.parent_comment_id is None

    def to_row(self) -> dict[str, object]:
        """Return the insert payload for ``workout_post_comments``."""
        return {
            "id": self.id,
            "workout_post_id": self.post_id,
            "user_id": self.user_id,
            "content": self.content,
            "parent_comment_id": self.parent_comment_id,
            "created_at": self.created_at,
        }


class CommentThread(BaseModel):
    """A root comment with its replies, oldest first."""

    root: Comment
    replies: list[Comment] = Field(default_factory=list)

    @property
    def size(self) -> int:
        return 1 + len(self.replies)
