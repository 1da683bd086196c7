"""Friend-related reads: who is working out right now, and who to follow.

The ActiveFriendsPoller re-polls active sessions on a fixed interval while the
feed screen is visible. Sessions whose owner stopped pinging are dropped even
if the backend still marks them active, which covers apps that crashed or were
force-closed mid-workout.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from updown_feed.core.settings import settings
from updown_feed.schemas import ActiveFriendSession, ActiveSessionRow
from updown_feed.schemas.author import UserProfile
from updown_feed.services.backend import BackendClient, BackendError
from updown_feed.services.retry import retry_async
from updown_feed.utils.timestamps import OLDEST, format_timestamp, parse_timestamp, utcnow

# Configure logger for this module
logger = logging.getLogger(__name__)

FALLBACK_USER_NAME = "User"


def is_session_current(row: ActiveSessionRow, now: datetime, stale_after: timedelta) -> bool:
    """Return True if a session started recently or was updated recently."""
    last_update = parse_timestamp(row.updated_at or row.started_at)
    if last_update == OLDEST:
        return False
    started = parse_timestamp(row.started_at)
    if started == OLDEST or now - started < stale_after:
        return True
    return last_update > now - stale_after


class ActiveFriendsPoller:
    """Periodically loads the followed users who currently have a workout running."""

    def __init__(
        self,
        backend: BackendClient,
        viewer_id: str,
        *,
        interval_seconds: float | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self.viewer_id = viewer_id
        self._interval = (
            settings.active_friends_poll_interval_seconds
            if interval_seconds is None
            else interval_seconds
        )
        self._now = now
        self.sessions: tuple[ActiveFriendSession, ...] = ()
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Start the background polling loop."""

        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background polling loop."""

        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        interval = max(0.1, float(self._interval))

        while not self._stopping.is_set():
            await self.poll_once()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                continue

    async def poll_once(self) -> bool:
        """Refresh ``sessions``. On failure the previous result is kept.

        Returns:
            True if the poll succeeded
        """
        now = self._now()
        max_age = timedelta(hours=settings.active_session_max_age_hours)
        stale_after = timedelta(minutes=settings.active_session_stale_minutes)

        try:
            following = await self._backend.get_following(self.viewer_id)
            if not following:
                self.sessions = ()
                return True
            rows = await self._backend.get_active_sessions(
                following, started_after=format_timestamp(now - max_age)
            )
            current = [row for row in rows if is_session_current(row, now, stale_after)]
            profiles = {
                profile.id: profile
                for profile in await self._backend.get_profiles(row.user_id for row in current)
            }
        except BackendError as exc:
            logger.warning("Active friends poll for %s failed: %s", self.viewer_id, exc)
            return False

        sessions = []
        for row in current:
            profile = profiles.get(row.user_id)
            if profile is None:
                continue
            sessions.append(
                ActiveFriendSession(
                    id=row.id,
                    user_id=row.user_id,
                    user_name=profile.username or FALLBACK_USER_NAME,
                    avatar_url=profile.avatar_url,
                    activity_type=row.activity_type,
                    started_at=row.started_at,
                    latitude=row.latitude,
                    longitude=row.longitude,
                )
            )
        self.sessions = tuple(sessions)
        logger.debug(
            "%d of %d active sessions are current for %s", len(sessions), len(rows), self.viewer_id
        )
        return True


async def load_recommended_users(
    backend: BackendClient, viewer_id: str, limit: int = 15
) -> list[UserProfile]:
    """Fetch follow suggestions with bounded retry; an empty list if every attempt fails."""
    try:
        return await retry_async(
            lambda: backend.get_recommended_users(viewer_id, limit),
            label=f"Recommended users for {viewer_id}",
        )
    except BackendError:
        return []
