"""
BIO Store Adapter.

Versions and persists the preference profile. Pure data access: every write
appends `latest + 1`, reads always return the highest version, and nothing is
ever overwritten in place.
"""

import logging
from datetime import datetime, timezone

from .errors import ProfileVersionConflict
from .profile import PLACEHOLDER_BIO, CategoryPreference, PreferenceProfile
from .store import OnboardingStore

logger = logging.getLogger(__name__)


class ProfileStore:
    """Append-only access to a user's BIO versions."""

    def __init__(self, store: OnboardingStore):
        self.store = store

    async def read(self, user_id: str) -> PreferenceProfile | None:
        """Latest version, or None if the user has no BIO."""
        return await self.store.get_latest_profile(user_id)

    async def initialize(self, user_id: str, categories: list[str]) -> PreferenceProfile:
        """
        Start a fresh BIO covering exactly `categories`, all at confidence 0.

        The first BIO is version 1. Retaking onboarding appends a new empty
        version on top of the old ones instead of rewriting history.
        """
        profile = PreferenceProfile(
            user_id=user_id,
            bio_text=PLACEHOLDER_BIO,
            categories={category: CategoryPreference() for category in categories},
        )

        current = await self.read(user_id)
        if current is None:
            profile.version = 1
            saved = await self.store.insert_profile_version(profile)
        else:
            saved = await self.write(user_id, profile, expected_version=current.version)

        logger.info(f"Initialized BIO v{saved.version} for {user_id}: {', '.join(categories)}")
        return saved

    async def write(
        self,
        user_id: str,
        profile: PreferenceProfile,
        expected_version: int | None = None,
    ) -> PreferenceProfile:
        """
        Append `profile` as the next version.

        If `expected_version` is given and the stored latest version differs,
        another writer got there first: ProfileVersionConflict, nothing written.
        The store's unique (user_id, version) key catches the remaining race
        between this read and the insert.
        """
        current = await self.read(user_id)
        current_version = current.version if current else 0

        if expected_version is not None and current_version != expected_version:
            raise ProfileVersionConflict(
                f"BIO for {user_id} is at v{current_version}, expected v{expected_version}",
                user_id=user_id,
            )

        new_profile = profile.model_copy(update={
            "user_id": user_id,
            "version": current_version + 1,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        })
        saved = await self.store.insert_profile_version(new_profile)
        logger.debug(f"Wrote BIO v{saved.version} for {user_id}")
        return saved
