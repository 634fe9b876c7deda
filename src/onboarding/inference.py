"""
Preference inference.

Turns one answered question into an updated category preference plus a
suggestion for what to ask next. The engine treats the result as a trusted
structured judgment; the production implementation asks an LLM through
Instructor so the output is schema-validated before it gets here.

Also holds the optional BioNarrator that rewrites the bio digest into a few
friendly sentences.
"""

import logging
from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from mila.llm.client import call_llm, call_llm_text
from mila.places.categories import category_label
from mila.places.models import PlaceCandidate

from .evidence import ComparisonEvidence, Evidence, MultiSelectEvidence
from .profile import CategoryPreference
from .state import QuestionStrategy, QuestionType

logger = logging.getLogger(__name__)


# =============================================================================
# Request / Result
# =============================================================================

class InferenceRequest(BaseModel):
    """Current state of one category plus the new evidence."""
    category: str
    current: CategoryPreference
    evidence: Evidence = Field(discriminator="kind")


class InferenceResult(BaseModel):
    """Updated category preference and next-question suggestion."""
    keywords: list[str] = Field(
        default_factory=list,
        description="Specific keywords describing what they like, e.g. ['specialty coffee', 'minimalist design']",
    )
    preferred_attributes: list[str] = Field(
        default_factory=list,
        description="Amenities they seem to prefer, e.g. ['outdoor seating', 'dog friendly']",
    )
    style_preferences: str = Field(
        default="",
        description="Short natural language description of their taste",
    )
    confidence_score: float = Field(
        ge=0.0, le=1.0,
        description="0-1, how confident we are about their preferences in this category",
    )
    next_question_type: Literal["multi-select", "ab-comparison"] | None = Field(
        default=None,
        description="Which question type would teach us the most next; null if nothing useful is left to ask",
    )
    next_question_queries: list[str] = Field(
        default_factory=list,
        description="2-3 search query strings (or contrasting attribute pairs) to test next",
    )
    next_question_message: str | None = Field(
        default=None,
        description="Friendly 1-2 sentence message for the next question. Don't reflect back what was learned.",
    )
    reasoning: str = Field(
        default="",
        description="Why this next question and what it is trying to learn",
    )

    def to_preference(self) -> CategoryPreference:
        return CategoryPreference(
            keywords=self.keywords,
            preferred_attributes=self.preferred_attributes,
            style_preferences=self.style_preferences,
            confidence_score=self.confidence_score,
        )

    def to_strategy(self) -> QuestionStrategy | None:
        """None when the model has nothing further to ask."""
        if self.next_question_type is None:
            return None
        return QuestionStrategy(
            question_type=QuestionType(self.next_question_type),
            queries=self.next_question_queries,
            message=self.next_question_message,
            reasoning=self.reasoning,
        )


@runtime_checkable
class PreferenceInferenceService(Protocol):
    async def infer(self, request: InferenceRequest) -> InferenceResult: ...


@runtime_checkable
class BioNarrator(Protocol):
    async def narrate(self, digest: str) -> str: ...


# =============================================================================
# Prompts
# =============================================================================

SYSTEM_PROMPT = (
    "You are a preference learning assistant. Analyze place selections to build "
    "accurate user taste profiles. Be specific and data-driven."
)

PROFILE_TEMPLATE = """You are analyzing user preferences for {category} places.

Current user profile for this category:
- Keywords: {keywords}
- Preferred Attributes: {attributes}
- Style Preferences: {style}
- Confidence Score: {confidence}
"""

TASK_TEMPLATE = """
Task: Update the user's profile for {category} based on this {kind}. Provide:
1. keywords: specific keywords that describe what they like
2. preferred_attributes: amenities they seem to prefer
3. style_preferences: a short natural language description of their taste
4. confidence_score: 0-1, how confident we are about their preferences
5. next_question_type: "multi-select" or "ab-comparison", whichever would help learn more
6. next_question_queries: 2-3 search query strings OR contrasting attribute pairs to test next
7. next_question_message: a natural, conversational message (1-2 sentences) to show with the next question. Be friendly and encouraging. Don't reflect back what was learned. Match the question type.
8. reasoning: why you chose this next question type and what you're trying to learn
"""


def _price(place: PlaceCandidate) -> str:
    return "$" * place.price_level if place.price_level else "N/A"


def _place_lines(place: PlaceCandidate, bullet: str = "   ") -> list[str]:
    return [
        f"{bullet}Address: {place.address}",
        f"{bullet}Rating: {place.rating}",
        f"{bullet}Price: {_price(place)}",
        f"{bullet}Types: {', '.join(place.types)}",
        f"{bullet}Attributes: {', '.join(place.attributes()) or 'none'}",
    ]


def _format_place_list(places: list[PlaceCandidate]) -> str:
    if not places:
        return "(none)"
    blocks = []
    for i, place in enumerate(places, 1):
        blocks.append("\n".join([f"{i}. {place.display_name}", *_place_lines(place)]))
    return "\n\n".join(blocks)


def _format_profile(category: str, current: CategoryPreference) -> str:
    return PROFILE_TEMPLATE.format(
        category=category,
        keywords=", ".join(current.keywords) or "none yet",
        attributes=", ".join(current.preferred_attributes) or "none yet",
        style=current.style_preferences or "none yet",
        confidence=current.confidence_score,
    )


def _format_multi_select(evidence: MultiSelectEvidence) -> str:
    selected, rejected = evidence.selected, evidence.rejected
    return f"""
The user just selected {len(selected)} places and rejected {len(rejected)} places from a set of options.

Selected places:
{_format_place_list(selected)}

Rejected places:
{_format_place_list(rejected)}
"""


def _format_comparison(evidence: ComparisonEvidence) -> str:
    if evidence.preference == "neutral":
        verdict = "no preference between A and B (strength: 0.00). Neither place is preferred."
    else:
        letter = "A" if evidence.preference == "place_a" else "B"
        verdict = f"prefers place {letter} (strength: {evidence.strength:.2f})"

    def block(letter: str, place: PlaceCandidate) -> str:
        return "\n".join([f"Place {letter}:", f"- Name: {place.display_name}", *_place_lines(place, "- ")])

    return f"""
The user just compared two places on a scale of 1-10, where 1 = strongly prefer A, 10 = strongly prefer B, 5 = neutral.
Their response: {evidence.slider_value}, {verdict}

{block("A", evidence.place_a)}

{block("B", evidence.place_b)}
"""


def build_prompt(request: InferenceRequest) -> str:
    """Full user prompt for one inference call."""
    label = category_label(request.category)
    evidence = request.evidence
    if isinstance(evidence, ComparisonEvidence):
        body, kind = _format_comparison(evidence), "comparison"
    else:
        body, kind = _format_multi_select(evidence), "selection"

    return _format_profile(label, request.current) + body + TASK_TEMPLATE.format(category=label, kind=kind)


# =============================================================================
# LLM implementations
# =============================================================================

class LLMPreferenceInference:
    """PreferenceInferenceService backed by the structured LLM client."""

    def __init__(self, model: str | None = None, temperature: float = 0.7):
        self.model = model
        self.temperature = temperature

    async def infer(self, request: InferenceRequest) -> InferenceResult:
        return await call_llm(
            response_model=InferenceResult,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_prompt(request),
            purpose=f"infer_{request.category}",
            model=self.model,
            temperature=self.temperature,
        )


NARRATOR_SYSTEM_PROMPT = "You create friendly, natural summaries of user preferences. Be concise and warm."

NARRATOR_PROMPT = """Create a natural, human-readable 2-3 sentence summary of this user's place preferences:

{digest}

Make it sound personal and helpful, not robotic. Focus on their taste and style."""


class LLMBioNarrator:
    """Rewrites the per-category digest into a short personal summary."""

    def __init__(self, model: str | None = None):
        self.model = model

    async def narrate(self, digest: str) -> str:
        return await call_llm_text(
            system_prompt=NARRATOR_SYSTEM_PROMPT,
            user_prompt=NARRATOR_PROMPT.format(digest=digest),
            purpose="bio_text",
            model=self.model,
        )
