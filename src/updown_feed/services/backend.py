"""REST client for the hosted feed backend.

This module provides the BackendClient class that handles all communication
between the feed client and the PostgREST API of the hosted backend. It
includes:

- A lazily created ``httpx.AsyncClient`` with the project API key headers
- Decoding of join rows into feed entities
- The read and write calls used by the feed and comment stores
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from updown_feed.core.settings import settings
from updown_feed.schemas import ActiveSessionRow, Comment, Post
from updown_feed.schemas.author import UserProfile

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400

FEED_SELECT = (
    "*,"
    "profiles!workout_posts_user_id_fkey(username,avatar_url,is_pro_member),"
    "workout_post_likes(count),"
    "workout_post_comments(count)"
)
COMMENTS_SELECT = "*,comment_likes(count)"
PROFILE_SELECT = "id,username,avatar_url,is_pro_member"


class BackendError(RuntimeError):
    """Base exception raised for backend failures.

    Network errors, unexpected responses and undecodable payloads all surface
    as this type so callers only need one ``except`` clause.
    """


class BackendResponseError(BackendError):
    """Raised when the backend answers with a non-success status code."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class BackendConfig:
    """Immutable configuration for backend operations."""

    base_url: str
    anon_key: str
    timeout_seconds: float


def load_backend_config() -> BackendConfig:
    """Build configuration object from global settings."""

    return BackendConfig(
        base_url=settings.rest_base_url,
        anon_key=settings.backend_anon_key,
        timeout_seconds=float(settings.backend_http_timeout_seconds),
    )


ModelT = TypeVar("ModelT", bound=BaseModel)


def decode_rows(model: type[ModelT], rows: list[dict[str, Any]], what: str) -> list[ModelT]:
    """Validate backend rows, reporting malformed ones as a BackendError."""
    try:
        return [model.model_validate(row) for row in rows]
    except ValidationError as exc:
        raise BackendError(f"Backend returned a malformed {what} row") from exc


def in_filter(values: Iterable[str]) -> str:
    """Render a PostgREST ``in`` filter with quoted values."""
    quoted = ",".join(f'"{value}"' for value in values)
    return f"in.({quoted})"


class BackendClient:
    """HTTP client wrapper for the hosted PostgREST API."""

    def __init__(
        self,
        config: BackendConfig | None = None,
        *,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_backend_config()
        self.access_token = access_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _build_headers(self, *, prefer: str | None = None) -> dict[str, str]:
        headers = {"apikey": self.config.anon_key}
        token = self.access_token or self.config.anon_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        path: str
        params: Mapping[str, Any] | None = None
        json_data: Any | None = None
        prefer: str | None = None

    async def _request(self, params: RequestParams) -> httpx.Response:
        client = await self._ensure_client()
        endpoint = f"{params.method} {params.path}"
        start_time = time.monotonic()

        try:
            response = await client.request(
                params.method,
                params.path,
                params=params.params,
                json=params.json_data,
                headers=self._build_headers(prefer=params.prefer),
            )
        except httpx.HTTPError as exc:
            logger.debug("%s failed after %.3fs: %s", endpoint, time.monotonic() - start_time, exc)
            raise BackendError(f"Backend request failed: {exc}") from exc

        logger.debug(
            "%s -> %d in %.3fs", endpoint, response.status_code, time.monotonic() - start_time
        )
        if response.status_code >= HTTP_BAD_REQUEST:
            raise BackendResponseError(
                response.status_code,
                f"Backend responded with {response.status_code} for {endpoint}",
            )
        return response

    async def _get_rows(self, path: str, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        response = await self._request(self.RequestParams(method="GET", path=path, params=params))
        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendError(f"Backend returned invalid JSON for {path}") from exc
        if not isinstance(payload, list) or not all(isinstance(row, dict) for row in payload):
            raise BackendError(f"Expected a list of rows from {path}")
        return payload

    # --- Reads ----------------------------------------------------------------------
    async def get_following(self, viewer_id: str) -> list[str]:
        """Return ids of users the viewer follows."""
        rows = await self._get_rows(
            "/user_follows",
            {"select": "following_id", "follower_id": f"eq.{viewer_id}"},
        )
        return [str(row["following_id"]) for row in rows if row.get("following_id")]

    async def get_feed(self, viewer_id: str) -> list[Post]:
        """Fetch posts by the viewer and everyone they follow, newest first."""
        following = await self.get_following(viewer_id)
        author_ids = list(dict.fromkeys([*following, viewer_id]))

        rows = await self._get_rows(
            "/workout_posts",
            {
                "select": FEED_SELECT,
                "user_id": in_filter(author_ids),
                "order": "created_at.desc",
            },
        )
        posts = decode_rows(Post, rows, "feed")

        liked = await self.get_liked_post_ids(viewer_id, [post.id for post in posts])
        logger.info("Fetched %d feed posts from %d authors", len(posts), len(author_ids))
        return [
            post.model_copy(update={"is_liked_by_current_user": post.id in liked})
            for post in posts
        ]

    async def get_liked_post_ids(self, viewer_id: str, post_ids: list[str]) -> set[str]:
        if not post_ids:
            return set()
        rows = await self._get_rows(
            "/workout_post_likes",
            {
                "select": "workout_post_id",
                "user_id": f"eq.{viewer_id}",
                "workout_post_id": in_filter(post_ids),
            },
        )
        return {str(row["workout_post_id"]) for row in rows if row.get("workout_post_id")}

    async def get_comments(self, post_id: str, viewer_id: str) -> list[Comment]:
        """Fetch all comments of a post, oldest first, with the viewer's like flags."""
        rows = await self._get_rows(
            "/workout_post_comments",
            {
                "select": COMMENTS_SELECT,
                "workout_post_id": f"eq.{post_id}",
                "order": "created_at.asc",
            },
        )
        comments = decode_rows(Comment, rows, "comment")
        if not comments:
            return []

        liked_rows = await self._get_rows(
            "/comment_likes",
            {
                "select": "comment_id",
                "user_id": f"eq.{viewer_id}",
                "comment_id": in_filter([comment.id for comment in comments]),
            },
        )
        liked = {str(row["comment_id"]) for row in liked_rows if row.get("comment_id")}
        return [
            comment.model_copy(update={"is_liked_by_current_user": comment.id in liked})
            for comment in comments
        ]

    async def get_profiles(self, user_ids: Iterable[str]) -> list[UserProfile]:
        """Fetch profile rows for the given users."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        rows = await self._get_rows(
            "/profiles",
            {"select": PROFILE_SELECT, "id": in_filter(ids)},
        )
        return decode_rows(UserProfile, rows, "profile")

    async def get_recommended_users(self, viewer_id: str, limit: int = 15) -> list[UserProfile]:
        """Suggest users followed by the people the viewer follows."""
        following = await self.get_following(viewer_id)
        excluded = {viewer_id, *following}

        counts: dict[str, int] = {}
        if following:
            rows = await self._get_rows(
                "/user_follows",
                {
                    "select": "follower_id",
                    "following_id": in_filter(following),
                    "follower_id": f"neq.{viewer_id}",
                },
            )
            for row in rows:
                follower = str(row.get("follower_id") or "")
                if follower and follower not in excluded:
                    counts[follower] = counts.get(follower, 0) + 1

        if not counts:
            rows = await self._get_rows(
                "/profiles",
                {
                    "select": PROFILE_SELECT,
                    "id": f"neq.{viewer_id}",
                    "username": "not.is.null",
                    "limit": str(limit + len(excluded)),
                },
            )
            profiles = decode_rows(UserProfile, rows, "profile")
            return [profile for profile in profiles if profile.id not in excluded][:limit]

        ranked = sorted(counts, key=lambda user_id: counts[user_id], reverse=True)[:limit]
        profiles = {profile.id: profile for profile in await self.get_profiles(ranked)}
        return [profiles[user_id] for user_id in ranked if user_id in profiles]

    async def get_active_sessions(
        self, user_ids: Iterable[str], *, started_after: str
    ) -> list[ActiveSessionRow]:
        """Fetch active workout sessions of the given users started after a cutoff."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        rows = await self._get_rows(
            "/active_sessions",
            {
                "select": "id,user_id,activity_type,started_at,latitude,longitude,is_active,updated_at",
                "user_id": in_filter(ids),
                "is_active": "eq.true",
                "started_at": f"gte.{started_after}",
            },
        )
        return decode_rows(ActiveSessionRow, rows, "active session")

    # --- Writes ---------------------------------------------------------------------
    async def like_post(self, post_id: str, user_id: str) -> None:
        await self._request(
            self.RequestParams(
                method="POST",
                path="/workout_post_likes",
                json_data={"workout_post_id": post_id, "user_id": user_id},
                prefer="return=minimal",
            )
        )

    async def unlike_post(self, post_id: str, user_id: str) -> None:
        await self._request(
            self.RequestParams(
                method="DELETE",
                path="/workout_post_likes",
                params={"workout_post_id": f"eq.{post_id}", "user_id": f"eq.{user_id}"},
            )
        )

    async def like_comment(self, comment_id: str, user_id: str) -> None:
        await self._request(
            self.RequestParams(
                method="POST",
                path="/comment_likes",
                json_data={"comment_id": comment_id, "user_id": user_id},
                prefer="return=minimal",
            )
        )

    async def unlike_comment(self, comment_id: str, user_id: str) -> None:
        await self._request(
            self.RequestParams(
                method="DELETE",
                path="/comment_likes",
                params={"comment_id": f"eq.{comment_id}", "user_id": f"eq.{user_id}"},
            )
        )

    async def add_comment(self, comment: Comment) -> Comment:
        """Insert a comment and return the stored row (or the input when none is echoed)."""
        response = await self._request(
            self.RequestParams(
                method="POST",
                path="/workout_post_comments",
                json_data=comment.to_row(),
                prefer="return=representation",
            )
        )
        try:
            rows = response.json()
        except ValueError:
            return comment
        if isinstance(rows, list) and rows:
            try:
                stored = Comment.model_validate(rows[0])
            except ValidationError:
                logger.warning("Stored comment %s could not be decoded", comment.id)
                return comment
            return stored.model_copy(update={"author": comment.author})
        return comment

    async def delete_comment(self, comment_id: str) -> None:
        await self._request(
            self.RequestParams(
                method="DELETE",
                path="/workout_post_comments",
                params={"id": f"eq.{comment_id}"},
            )
        )

    async def delete_post(self, post_id: str) -> None:
        await self._request(
            self.RequestParams(
                method="DELETE",
                path="/workout_posts",
                params={"id": f"eq.{post_id}"},
            )
        )
