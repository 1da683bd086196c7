"""Post-related Pydantic schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from updown_feed.schemas.author import AuthorInfo, KnownAuthor, UnknownAuthor, author_from_profile


def aggregate_count(value: Any) -> int:
    """Read a PostgREST ``relation(count)`` aggregate such as ``[{"count": 3}]``."""
    if isinstance(value, list) and value:
        first = value[0]
        if isinstance(first, dict):
            try:
                return max(0, int(first.get("count") or 0))
            except (TypeError, ValueError):
                return 0
    if isinstance(value, dict):
        return aggregate_count([value])
    return 0


class Post(BaseModel):
    """One workout entry in the social feed."""

    id: str
    user_id: str
    activity_type: str
    title: str
    description: str | None = None
    distance: float | None = None
    duration: int | None = None
    elevation_gain: float | None = None
    image_url: str | None = Field(None, description="Route image")
    user_image_url: str | None = Field(None, description="Image uploaded by the author")
    created_at: str
    author: AuthorInfo = Field(default_factory=UnknownAuthor)
    like_count: int | None = Field(None, ge=0)
    comment_count: int | None = Field(None, ge=0)
    is_liked_by_current_user: bool | None = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _flatten_join_rows(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        profiles = data.pop("profiles", None)
        if "author" not in data and profiles is not None:
            if isinstance(profiles, list):
                profiles = profiles[0] if profiles else None
            data["author"] = author_from_profile(profiles)

        likes = data.pop("workout_post_likes", None)
        if "like_count" not in data and likes is not None:
            data["like_count"] = aggregate_count(likes)

        comments = data.pop("workout_post_comments", None)
        if "comment_count" not in data and comments is not None:
            data["comment_count"] = aggregate_count(comments)

        return data

    @property
    def has_known_author(self) -> bool:
        return isinstance(self.author, KnownAuthor)

    @property
    def media_urls(self) -> list[str]:
        """Image URLs worth prefetching for this post."""
        urls = [self.image_url, self.user_image_url]
        if isinstance(self.author, KnownAuthor):
            urls.append(self.author.avatar_url)
        return [url for url in urls if url]
