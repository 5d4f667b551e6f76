"""User profiles and preferences (durable scope only)."""

from __future__ import annotations

from typing import Any, Callable

from vantage.logging import get_logger
from vantage.storage.documents import SQLiteDocumentStore
from vantage.types import OwnerScope, UserPreferences, UserProfile, now_ms

logger = get_logger(__name__)


class UserDirectory:
    """Create-or-touch, read and preference updates for signed-in users.

    Every operation is a no-op for the local scope. Failures are logged and
    swallowed so a profile problem never blocks a research run.
    """

    def __init__(
        self,
        documents: SQLiteDocumentStore | None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.documents = documents
        self._clock = clock

    def _enabled(self, owner: OwnerScope) -> bool:
        return owner.is_durable and self.documents is not None

    async def sign_in(
        self,
        owner: OwnerScope,
        email: str | None = None,
        display_name: str | None = None,
        photo_url: str | None = None,
    ) -> UserProfile | None:
        """Create the profile on first sign-in, otherwise refresh ``last_login``."""
        if not self._enabled(owner):
            return None

        try:
            existing = await self.documents.get_user(owner.owner_id)
            if existing is None:
                now = self._clock()
                profile = UserProfile(
                    uid=owner.owner_id,
                    email=email,
                    display_name=display_name,
                    photo_url=photo_url,
                    created_at=now,
                    last_login=now,
                )
                await self.documents.set_user(owner.owner_id, profile.to_dict())
                logger.info("User profile created", owner=str(owner))
                return profile

            await self.documents.update_user(owner.owner_id, {"last_login": self._clock()})
            return await self.get(owner)
        except Exception as e:
            logger.error("Failed to save user profile", owner=str(owner), error=str(e))
            return None

    async def get(self, owner: OwnerScope) -> UserProfile | None:
        if not self._enabled(owner):
            return None
        try:
            data = await self.documents.get_user(owner.owner_id)
        except Exception as e:
            logger.error("Failed to read user profile", owner=str(owner), error=str(e))
            return None
        return UserProfile.from_dict(data) if data else None

    async def preferences(self, owner: OwnerScope) -> UserPreferences:
        """Stored preferences, or defaults when unavailable."""
        profile = await self.get(owner)
        return profile.preferences if profile else UserPreferences()

    async def update_preferences(self, owner: OwnerScope, **preferences: Any) -> bool:
        """Update individual preference keys without replacing the map.

        Returns:
            True when the update was written.
        """
        if not self._enabled(owner) or not preferences:
            return False
        updates = {f"preferences.{key}": value for key, value in preferences.items()}
        try:
            await self.documents.update_user(owner.owner_id, updates)
        except Exception as e:
            logger.error("Failed to update preferences", owner=str(owner), error=str(e))
            return False
        logger.info("Preferences updated", owner=str(owner), keys=sorted(preferences))
        return True
