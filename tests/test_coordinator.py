"""
Tests for the preference update coordinator.
"""

import asyncio

import pytest

from fakes import FakeInference, FakeNarrator, _run, make_place, result
from onboarding.bio_store import ProfileStore
from onboarding.coordinator import PreferenceUpdateCoordinator
from onboarding.errors import InferenceFailure, ProfileNotInitialized
from onboarding.evidence import ComparisonEvidence, MultiSelectEvidence, PlaceSelection
from onboarding.inference import build_prompt
from onboarding.profile import PLACEHOLDER_BIO
from onboarding.state import QuestionType
from onboarding.store import InMemoryOnboardingStore


def multi_select(selected=("a", "b"), rejected=("c", "d")):
    return MultiSelectEvidence(selections=[
        *(PlaceSelection(place=make_place(pid), selected=True) for pid in selected),
        *(PlaceSelection(place=make_place(pid), selected=False) for pid in rejected),
    ])


def coordinator(inference, narrator=None, categories=("cafe", "park")):
    profiles = ProfileStore(InMemoryOnboardingStore())
    _run(profiles.initialize("u1", list(categories)))
    return PreferenceUpdateCoordinator(profiles, inference, narrator), profiles


class TestUpdate:
    def test_full_replace_of_category_fields(self):
        inference = FakeInference(
            result(0.4, keywords=["cozy", "books"], preferred_attributes=["dog friendly"]),
            result(0.5, keywords=["espresso"], preferred_attributes=[]),
        )
        coord, profiles = coordinator(inference)
        _run(coord.update("u1", "cafe", multi_select()))
        update = _run(coord.update("u1", "cafe", multi_select()))

        cafe = update.profile.categories["cafe"]
        assert cafe.keywords == ["espresso"]
        assert cafe.preferred_attributes == []
        assert cafe.confidence_score == 0.5
        assert update.profile.categories["park"].confidence_score == 0

    def test_version_after_n_updates_is_n_plus_one(self):
        coord, profiles = coordinator(FakeInference(result(0.3)))
        for _ in range(3):
            _run(coord.update("u1", "cafe", multi_select()))
        assert _run(profiles.read("u1")).version == 4

    def test_returns_confidence_and_strategy(self):
        inference = FakeInference(result(
            0.6, question_type="ab-comparison", queries=["cozy vs modern", "quiet vs lively"],
            next_question_message="Which one would you pick?",
        ))
        coord, _ = coordinator(inference)
        update = _run(coord.update("u1", "cafe", multi_select()))

        assert update.confidence_score == 0.6
        assert update.next_strategy.question_type == QuestionType.AB_COMPARISON
        assert update.next_strategy.queries == ["cozy vs modern", "quiet vs lively"]
        assert update.next_strategy.message == "Which one would you pick?"

    def test_no_next_question_type_means_no_strategy(self):
        coord, _ = coordinator(FakeInference(result(0.6, question_type=None)))
        update = _run(coord.update("u1", "cafe", multi_select()))
        assert update.next_strategy is None

    def test_request_carries_current_state(self):
        inference = FakeInference(result(0.4, keywords=["cozy"]), result(0.5))
        coord, _ = coordinator(inference)
        _run(coord.update("u1", "cafe", multi_select()))
        _run(coord.update("u1", "cafe", multi_select()))

        second = inference.requests[1]
        assert second.category == "cafe"
        assert second.current.keywords == ["cozy"]
        assert second.current.confidence_score == 0.4

    def test_missing_profile(self):
        coord = PreferenceUpdateCoordinator(ProfileStore(InMemoryOnboardingStore()), FakeInference())
        with pytest.raises(ProfileNotInitialized):
            _run(coord.update("ghost", "cafe", multi_select()))


class TestBioText:
    def test_placeholder_while_nothing_is_material(self):
        coord, _ = coordinator(FakeInference(result(0.3)))
        update = _run(coord.update("u1", "cafe", multi_select()))
        assert update.profile.bio_text == PLACEHOLDER_BIO

    def test_digest_lists_material_categories_only(self):
        inference = FakeInference(result(0.7, style_preferences="bright and quiet"), result(0.2))
        coord, _ = coordinator(inference)
        _run(coord.update("u1", "cafe", multi_select()))
        update = _run(coord.update("u1", "park", multi_select()))

        assert "cafe: bright and quiet (keywords: specialty coffee)" in update.profile.bio_text
        assert "park" not in update.profile.bio_text
        assert update.profile.categories["park"].confidence_score == 0.2

    def test_narrator_rewrites_digest(self):
        narrator = FakeNarrator("You love calm cafes.")
        coord, _ = coordinator(FakeInference(result(0.7)), narrator)
        update = _run(coord.update("u1", "cafe", multi_select()))
        assert update.profile.bio_text == "You love calm cafes."
        assert narrator.digests[0].startswith("cafe:")

    def test_narrator_failure_keeps_digest(self):
        narrator = FakeNarrator(error=RuntimeError("llm down"))
        coord, _ = coordinator(FakeInference(result(0.7)), narrator)
        update = _run(coord.update("u1", "cafe", multi_select()))
        assert update.profile.bio_text.startswith("cafe:")


class TestFailures:
    """A failed inference never writes a version."""

    @pytest.mark.parametrize("error", [
        RuntimeError("model exploded"),
        asyncio.TimeoutError(),
        ValueError("unparseable"),
    ])
    def test_inference_error_leaves_profile_untouched(self, error):
        coord, profiles = coordinator(FakeInference(error))
        with pytest.raises(InferenceFailure) as exc_info:
            _run(coord.update("u1", "cafe", multi_select()))

        assert exc_info.value.retriable is True
        assert exc_info.value.category == "cafe"
        assert _run(profiles.read("u1")).version == 1

    def test_malformed_output_is_an_inference_failure(self):
        class Garbage:
            async def infer(self, request):
                return {"keywords": "not a list", "confidence_score": 7}

        coord, profiles = coordinator(Garbage())
        with pytest.raises(InferenceFailure):
            _run(coord.update("u1", "cafe", multi_select()))
        assert _run(profiles.read("u1")).version == 1


class TestComparison:
    def test_neutral_slider_has_no_preference(self):
        evidence = ComparisonEvidence(place_a=make_place("a"), place_b=make_place("b"), slider_value=5)
        assert evidence.strength == 0
        assert evidence.preference == "neutral"
        assert evidence.preferred is None

    def test_strength_and_direction(self):
        strong_a = ComparisonEvidence(place_a=make_place("a"), place_b=make_place("b"), slider_value=1)
        strong_b = ComparisonEvidence(place_a=make_place("a"), place_b=make_place("b"), slider_value=10)
        assert (strong_a.preference, strong_a.strength) == ("place_a", 0.8)
        assert (strong_b.preference, strong_b.strength) == ("place_b", 1.0)
        assert strong_b.preferred.place_id == "b"

    def test_slider_out_of_range(self):
        with pytest.raises(ValueError):
            ComparisonEvidence(place_a=make_place("a"), place_b=make_place("b"), slider_value=11)

    def test_neutral_request_marks_neither_place_preferred(self):
        inference = FakeInference(result(0.4))
        coord, _ = coordinator(inference)
        evidence = ComparisonEvidence(
            place_a=make_place("a", display_name="Cafe Alpha"),
            place_b=make_place("b", display_name="Cafe Beta"),
            slider_value=5,
        )
        _run(coord.update("u1", "cafe", evidence))

        request = inference.requests[0]
        assert request.evidence.strength == 0
        prompt = build_prompt(request)
        assert "no preference between A and B" in prompt
        assert "prefers place" not in prompt
        assert "Cafe Alpha" in prompt and "Cafe Beta" in prompt

    def test_multi_select_prompt_lists_both_sides(self):
        inference = FakeInference(result(0.4))
        coord, _ = coordinator(inference)
        _run(coord.update("u1", "cafe", multi_select(selected=("a",), rejected=("b", "c"))))

        prompt = build_prompt(inference.requests[0])
        assert "selected 1 places and rejected 2 places" in prompt
        assert "Place a" in prompt
