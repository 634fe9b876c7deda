"""
Tests for the session stores: revision compare-and-swap in memory and the
Supabase adapter's queries against a mocked client.
"""

from unittest.mock import MagicMock

import pytest
from supabase import PostgrestAPIError

from fakes import HOME, _run, make_place
from onboarding.errors import ProfileVersionConflict, SessionConflict
from onboarding.profile import PreferenceProfile
from onboarding.state import (
    OnboardingSession,
    OnboardingStep,
    QuestionStrategy,
    QuestionType,
    normalize_queries,
)
from onboarding.store import SESSIONS_TABLE, InMemoryOnboardingStore, SupabaseOnboardingStore


def discover_session(**fields) -> OnboardingSession:
    return OnboardingSession(
        user_id="u1",
        current_step=OnboardingStep.DISCOVER,
        current_category="cafe",
        selected_categories=["cafe", "park"],
        **fields,
    )


class TestSessionModel:
    def test_round_trips_through_dict(self):
        session = discover_session(
            shown_candidates=[make_place("p1")],
            pending_strategy=QuestionStrategy(QuestionType.AB_COMPARISON, ["a"], "Which?"),
            exclusions=["p0"],
        )
        restored = OnboardingSession.from_dict(session.to_dict())
        assert restored.shown_place_ids == ["p1"]
        assert restored.pending_strategy.question_type == QuestionType.AB_COMPARISON
        assert restored.exclusions == ["p0"]

    def test_current_category_must_be_selected(self):
        with pytest.raises(ValueError):
            OnboardingSession(user_id="u1", current_category="bar", selected_categories=["cafe"])

    def test_completed_must_be_in_complete_step(self):
        with pytest.raises(ValueError):
            OnboardingSession(user_id="u1", completed=True)

    def test_strategy_keeps_three_queries(self):
        assert QuestionStrategy(queries=["a", " ", "b", "c", "d"]).queries == ["a", "b", "c"]

    def test_normalize_queries(self):
        assert normalize_queries([" x ", "", None, "y"]) == ["x", "y"]
        assert normalize_queries(None) == []


class TestInMemoryStore:
    def test_revision_bumps_on_every_save(self):
        store = InMemoryOnboardingStore()
        first = _run(store.put_session(discover_session()))
        second = _run(store.put_session(first, expected_revision=first.revision))
        assert (first.revision, second.revision) == (1, 2)

    def test_stale_revision_conflicts(self):
        store = InMemoryOnboardingStore()
        saved = _run(store.put_session(discover_session()))
        _run(store.put_session(saved, expected_revision=1))
        with pytest.raises(SessionConflict):
            _run(store.put_session(saved, expected_revision=1))

    def test_reads_are_copies(self):
        store = InMemoryOnboardingStore()
        _run(store.put_session(discover_session()))
        session = _run(store.get_session("u1"))
        session.exclusions.append("p9")
        assert _run(store.get_session("u1")).exclusions == []


class TestSupabaseStore:
    def test_get_session_reads_state_and_revision(self, mock_supabase):
        table = mock_supabase.table.return_value
        table.execute.return_value = MagicMock(data=[{"state": discover_session().to_dict(), "revision": 7}])

        session = _run(SupabaseOnboardingStore(mock_supabase).get_session("u1"))

        mock_supabase.table.assert_called_with(SESSIONS_TABLE)
        assert session.current_category == "cafe"
        assert session.revision == 7

    def test_missing_session_is_none(self, mock_supabase):
        assert _run(SupabaseOnboardingStore(mock_supabase).get_session("u1")) is None

    def test_conditional_update_filters_on_revision(self, mock_supabase):
        table = mock_supabase.table.return_value
        table.execute.return_value = MagicMock(data=[{"user_id": "u1"}])

        saved = _run(SupabaseOnboardingStore(mock_supabase).put_session(discover_session(), expected_revision=3))

        assert saved.revision == 4
        table.eq.assert_any_call("revision", 3)
        row = table.update.call_args.args[0]
        assert row["revision"] == 4
        assert row["state"]["current_category"] == "cafe"

    def test_no_row_updated_is_a_conflict(self, mock_supabase):
        with pytest.raises(SessionConflict):
            _run(SupabaseOnboardingStore(mock_supabase).put_session(discover_session(), expected_revision=3))

    def test_location_round_trip(self, mock_supabase):
        table = mock_supabase.table.return_value
        table.execute.return_value = MagicMock(data=[HOME.to_dict()])
        store = SupabaseOnboardingStore(mock_supabase)

        _run(store.put_location(HOME))
        assert table.upsert.call_args.args[0]["place_id"] == "home"
        assert _run(store.get_location(HOME.user_id)) == HOME

    def test_latest_profile_uses_row_version(self, mock_supabase):
        table = mock_supabase.table.return_value
        table.execute.return_value = MagicMock(data=[{"version": 5, "bio": {"bio_text": "Likes parks"}}])

        profile = _run(SupabaseOnboardingStore(mock_supabase).get_latest_profile("u1"))

        table.order.assert_called_with("version", desc=True)
        assert (profile.user_id, profile.version, profile.bio_text) == ("u1", 5, "Likes parks")

    def test_duplicate_version_is_a_conflict(self, mock_supabase):
        table = mock_supabase.table.return_value
        table.execute.side_effect = PostgrestAPIError({"code": "23505", "message": "duplicate key"})

        with pytest.raises(ProfileVersionConflict):
            _run(SupabaseOnboardingStore(mock_supabase).insert_profile_version(PreferenceProfile(user_id="u1")))
