"""
Tests for the LLM-backed inference and narrator adapters.

The LLM client is patched out; these check what gets sent and what comes back.
"""

from unittest.mock import AsyncMock, patch

from fakes import _run, make_place, result
from onboarding.evidence import MultiSelectEvidence, PlaceSelection
from onboarding.inference import (
    InferenceRequest,
    InferenceResult,
    LLMBioNarrator,
    LLMPreferenceInference,
    SYSTEM_PROMPT,
)
from onboarding.profile import CategoryPreference
from onboarding.state import QuestionType


def request():
    return InferenceRequest(
        category="coffee_shop",
        current=CategoryPreference(keywords=["espresso"], confidence_score=0.2),
        evidence=MultiSelectEvidence(selections=[
            PlaceSelection(place=make_place("a", price_level=2), selected=True),
            PlaceSelection(place=make_place("b"), selected=False),
        ]),
    )


class TestLLMPreferenceInference:
    def test_sends_structured_request(self):
        expected = result(0.6, queries=["third wave"])
        with patch("onboarding.inference.call_llm", new=AsyncMock(return_value=expected)) as mock_llm:
            got = _run(LLMPreferenceInference(model="gpt-test", temperature=0.2).infer(request()))

        assert got is expected
        kwargs = mock_llm.await_args.kwargs
        assert kwargs["response_model"] is InferenceResult
        assert kwargs["system_prompt"] == SYSTEM_PROMPT
        assert kwargs["purpose"] == "infer_coffee_shop"
        assert kwargs["model"] == "gpt-test"
        assert "coffee shop" in kwargs["user_prompt"]
        assert "espresso" in kwargs["user_prompt"]


class TestInferenceResult:
    def test_strategy_from_result(self):
        strategy = result(0.5, question_type="ab-comparison", queries=["a", "b", "c", "d"],
                          next_question_message="Which one?").to_strategy()
        assert strategy.question_type == QuestionType.AB_COMPARISON
        assert strategy.queries == ["a", "b", "c"]
        assert strategy.message == "Which one?"

    def test_no_next_type_means_no_strategy(self):
        assert result(0.5, question_type=None).to_strategy() is None

    def test_preference_carries_the_learned_fields(self):
        pref = result(0.7, keywords=["latte art", "latte art"]).to_preference()
        assert pref.keywords == ["latte art"]
        assert pref.confidence_score == 0.7


class TestLLMBioNarrator:
    def test_narrates_digest(self):
        with patch("onboarding.inference.call_llm_text", new=AsyncMock(return_value="You like quiet cafes.")) as mock_llm:
            text = _run(LLMBioNarrator().narrate("cafe: quiet"))

        assert text == "You like quiet cafes."
        assert "cafe: quiet" in mock_llm.await_args.kwargs["user_prompt"]
        assert mock_llm.await_args.kwargs["purpose"] == "bio_text"
