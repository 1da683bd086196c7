"""Author display metadata attached to posts and comments."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class KnownAuthor(BaseModel):
    """Author whose profile has been loaded."""

    kind: Literal["known"] = "known"
    name: str
    avatar_url: str | None = None
    is_pro: bool = False

    model_config = ConfigDict(frozen=True)


class UnknownAuthor(BaseModel):
    """Author whose profile has not been loaded yet."""

    kind: Literal["unknown"] = "unknown"

    model_config = ConfigDict(frozen=True)


AuthorInfo = Annotated[KnownAuthor | UnknownAuthor, Field(discriminator="kind")]


class UserProfile(BaseModel):
    """Row of the ``profiles`` table."""

    id: str
    username: str | None = None
    avatar_url: str | None = None
    is_pro_member: bool | None = None

    def to_author(self) -> KnownAuthor | UnknownAuthor:
        return author_from_profile(self.model_dump())


def author_from_profile(profile: Mapping[str, object] | None) -> KnownAuthor | UnknownAuthor:
    """Build author info from a ``profiles`` row; rows without a username stay unknown."""
    if not profile:
        return UnknownAuthor()
    username = profile.get("username")
    if not isinstance(username, str) or not username:
        return UnknownAuthor()
    avatar = profile.get("avatar_url")
    return KnownAuthor(
        name=username,
        avatar_url=avatar if isinstance(avatar, str) and avatar else None,
        is_pro=bool(profile.get("is_pro_member") or False),
    )
