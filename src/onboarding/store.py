"""
Onboarding Persistence.

Defines the storage capability the onboarding engine consumes and two
implementations:

- InMemoryOnboardingStore: process-local, used by tests and the CLI interview
- SupabaseOnboardingStore: production, three tables (see migrations/)

Both writes are conditional:
- sessions are saved with a compare-and-swap on `revision`
- BIO versions are appended with a unique (user_id, version) key, so a stale
  writer can never overwrite or duplicate a version
"""

import logging
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from supabase import Client, PostgrestAPIError

from .errors import ProfileVersionConflict, SessionConflict
from .profile import PreferenceProfile
from .state import OnboardingSession, UserLocation

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "onboarding_sessions"
BIOS_TABLE = "user_bios"
LOCATIONS_TABLE = "user_locations"

# Postgres unique_violation
_UNIQUE_VIOLATION = "23505"


@runtime_checkable
class OnboardingStore(Protocol):
    """Key-value sessions and locations, append-only versioned profiles."""

    async def get_session(self, user_id: str) -> OnboardingSession | None: ...

    async def put_session(
        self,
        session: OnboardingSession,
        expected_revision: int | None = None,
    ) -> OnboardingSession:
        """
        Save a session and return it with its new revision.

        expected_revision=None overwrites unconditionally (initialization).
        Otherwise the stored revision must still equal expected_revision,
        else SessionConflict.
        """
        ...

    async def get_location(self, user_id: str) -> UserLocation | None: ...

    async def put_location(self, location: UserLocation) -> None: ...

    async def get_latest_profile(self, user_id: str) -> PreferenceProfile | None: ...

    async def insert_profile_version(self, profile: PreferenceProfile) -> PreferenceProfile:
        """Append a version. ProfileVersionConflict if (user_id, version) exists."""
        ...


# =============================================================================
# In-memory
# =============================================================================


class InMemoryOnboardingStore:
    """Dict-backed store. Copies on the way in and out so callers can't alias state."""

    def __init__(self):
        self.sessions: dict[str, dict] = {}
        self.locations: dict[str, UserLocation] = {}
        self.profiles: dict[str, dict[int, PreferenceProfile]] = {}

    async def get_session(self, user_id: str) -> OnboardingSession | None:
        data = self.sessions.get(user_id)
        return OnboardingSession.from_dict(data) if data else None

    async def put_session(
        self,
        session: OnboardingSession,
        expected_revision: int | None = None,
    ) -> OnboardingSession:
        current = self.sessions.get(session.user_id)
        current_revision = current["revision"] if current else 0

        if expected_revision is not None and current_revision != expected_revision:
            raise SessionConflict(
                f"Session for {session.user_id} changed (revision {current_revision}, expected {expected_revision})",
                user_id=session.user_id,
                category=session.current_category,
                step=session.current_step.value,
            )

        session.revision = current_revision + 1
        session.touch()
        session.check_invariants()
        self.sessions[session.user_id] = session.to_dict()
        return OnboardingSession.from_dict(self.sessions[session.user_id])

    async def get_location(self, user_id: str) -> UserLocation | None:
        location = self.locations.get(user_id)
        return UserLocation.from_dict(location.to_dict()) if location else None

    async def put_location(self, location: UserLocation) -> None:
        self.locations[location.user_id] = UserLocation.from_dict(location.to_dict())

    async def get_latest_profile(self, user_id: str) -> PreferenceProfile | None:
        versions = self.profiles.get(user_id)
        if not versions:
            return None
        return versions[max(versions)].model_copy(deep=True)

    async def insert_profile_version(self, profile: PreferenceProfile) -> PreferenceProfile:
        versions = self.profiles.setdefault(profile.user_id, {})
        if profile.version in versions:
            raise ProfileVersionConflict(
                f"BIO version {profile.version} already exists for {profile.user_id}",
                user_id=profile.user_id,
            )
        versions[profile.version] = profile.model_copy(deep=True)
        return profile


# =============================================================================
# Supabase
# =============================================================================


class SupabaseOnboardingStore:
    """
    Supabase-backed store.

    Tables (migrations/001_onboarding.sql):
    - onboarding_sessions(user_id pk, state jsonb, current_step, revision, updated_at)
    - user_bios(user_id, version, bio jsonb, created_at, pk(user_id, version))
    - user_locations(user_id pk, place_id, label, lat, lng, updated_at)
    """

    def __init__(self, client: Client | None = None):
        if client is None:
            from mila.db.client import get_service_client
            client = get_service_client()
        self.client = client

    async def get_session(self, user_id: str) -> OnboardingSession | None:
        result = (
            self.client.table(SESSIONS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        session = OnboardingSession.from_dict(row["state"])
        session.revision = row.get("revision", session.revision)
        return session

    async def put_session(
        self,
        session: OnboardingSession,
        expected_revision: int | None = None,
    ) -> OnboardingSession:
        session.touch()
        session.check_invariants()

        if expected_revision is None:
            existing = await self.get_session(session.user_id)
            session.revision = (existing.revision if existing else 0) + 1
            self.client.table(SESSIONS_TABLE).upsert(self._session_row(session)).execute()
            return session

        session.revision = expected_revision + 1
        result = (
            self.client.table(SESSIONS_TABLE)
            .update(self._session_row(session))
            .eq("user_id", session.user_id)
            .eq("revision", expected_revision)
            .execute()
        )
        if not result.data:
            raise SessionConflict(
                f"Session for {session.user_id} changed since revision {expected_revision}",
                user_id=session.user_id,
                category=session.current_category,
                step=session.current_step.value,
            )
        return session

    def _session_row(self, session: OnboardingSession) -> dict:
        return {
            "user_id": session.user_id,
            "state": session.to_dict(),
            "current_step": session.current_step.value,
            "revision": session.revision,
            "updated_at": session.last_active,
        }

    async def get_location(self, user_id: str) -> UserLocation | None:
        result = (
            self.client.table(LOCATIONS_TABLE)
            .select("user_id, place_id, label, lat, lng")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return UserLocation.from_dict(result.data[0]) if result.data else None

    async def put_location(self, location: UserLocation) -> None:
        self.client.table(LOCATIONS_TABLE).upsert({
            **location.to_dict(),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }).execute()

    async def get_latest_profile(self, user_id: str) -> PreferenceProfile | None:
        result = (
            self.client.table(BIOS_TABLE)
            .select("version, bio")
            .eq("user_id", user_id)
            .order("version", desc=True)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        return PreferenceProfile.model_validate({**row["bio"], "user_id": user_id, "version": row["version"]})

    async def insert_profile_version(self, profile: PreferenceProfile) -> PreferenceProfile:
        try:
            self.client.table(BIOS_TABLE).insert({
                "user_id": profile.user_id,
                "version": profile.version,
                "bio": profile.model_dump(),
                "created_at": profile.last_updated,
            }).execute()
        except PostgrestAPIError as e:
            if e.code == _UNIQUE_VIOLATION:
                raise ProfileVersionConflict(
                    f"BIO version {profile.version} already exists for {profile.user_id}",
                    user_id=profile.user_id,
                ) from e
            raise
        return profile
