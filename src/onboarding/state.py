"""
Onboarding State Management.

Tracks where a user is in the interview: which step, which category, how
many questions have been answered in it, and which places they have already
seen. State is persisted per user (one record, upserted) so the flow survives
interruptions; re-initializing overwrites it to allow retaking onboarding.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum

from mila.places.models import PlaceCandidate

MAX_STRATEGY_QUERIES = 3


class OnboardingStep(Enum):
    """Onboarding flow steps."""
    LOCATION = "location"        # Residential place not set yet
    CATEGORIES = "categories"    # Picking categories to be interviewed about
    DISCOVER = "discover"        # Question/answer cycles per category
    COMPLETE = "complete"        # Done


class QuestionType(Enum):
    MULTI_SELECT = "multi-select"
    AB_COMPARISON = "ab-comparison"


def normalize_queries(queries: list[str] | None) -> list[str]:
    """Stripped, non-blank queries, at most MAX_STRATEGY_QUERIES of them."""
    return [q.strip() for q in queries or [] if q and q.strip()][:MAX_STRATEGY_QUERIES]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class QuestionStrategy:
    """What to ask next, as decided by the inference step."""
    question_type: QuestionType = QuestionType.MULTI_SELECT
    queries: list[str] = field(default_factory=list)
    message: str | None = None
    reasoning: str = ""  # Diagnostic only, never shown to the user

    def __post_init__(self):
        self.queries = normalize_queries(self.queries)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["question_type"] = self.question_type.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionStrategy":
        data = dict(data)
        data["question_type"] = QuestionType(data.get("question_type", QuestionType.MULTI_SELECT.value))
        return cls(**data)


@dataclass
class UserLocation:
    """Residential place the interview searches around."""
    user_id: str
    place_id: str
    label: str
    lat: float
    lng: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UserLocation":
        return cls(**data)


@dataclass
class OnboardingSession:
    """
    Per-user onboarding session.

    Invariants:
    - current_category, when set, is one of selected_categories
    - completed implies current_step == COMPLETE
    - exclusions only grow within a category and are cleared on advance
    """
    user_id: str = ""
    current_step: OnboardingStep = OnboardingStep.CATEGORIES
    current_category: str | None = None
    selected_categories: list[str] = field(default_factory=list)
    questions_asked: int = 0
    completed: bool = False
    last_active: str = ""

    # Optimistic concurrency token, bumped by the store on every save
    revision: int = 0

    # Discovery bookkeeping for the active category
    exclusions: list[str] = field(default_factory=list)
    shown_candidates: list[PlaceCandidate] = field(default_factory=list)
    pending_strategy: QuestionStrategy | None = None
    confidence_history: list[float] = field(default_factory=list)

    def __post_init__(self):
        if not self.last_active:
            self.last_active = _now()
        self.check_invariants()

    def check_invariants(self) -> None:
        if self.questions_asked < 0:
            raise ValueError("questions_asked must be non-negative")
        if len(set(self.selected_categories)) != len(self.selected_categories):
            raise ValueError("selected_categories must be unique")
        if self.current_category is not None and self.current_category not in self.selected_categories:
            raise ValueError(f"current_category {self.current_category!r} is not a selected category")
        if self.completed and self.current_step != OnboardingStep.COMPLETE:
            raise ValueError("a completed session must be in the complete step")

    def touch(self) -> None:
        self.last_active = _now()

    @property
    def shown_place_ids(self) -> list[str]:
        return [c.place_id for c in self.shown_candidates]

    def exclude(self, place_ids: list[str]) -> None:
        """Add ids to the exclusion set, keeping first-seen order."""
        seen = set(self.exclusions)
        for place_id in place_ids:
            if place_id not in seen:
                self.exclusions.append(place_id)
                seen.add(place_id)

    def next_category(self) -> str | None:
        """Category after the current one, or None if this is the last."""
        if self.current_category is None:
            return None
        index = self.selected_categories.index(self.current_category)
        if index + 1 < len(self.selected_categories):
            return self.selected_categories[index + 1]
        return None

    def start_category(self, category: str, initial_confidence: float = 0.0) -> None:
        """Reset per-category bookkeeping and make `category` current."""
        self.current_category = category
        self.questions_asked = 0
        self.exclusions = []
        self.shown_candidates = []
        self.pending_strategy = None
        self.confidence_history = [initial_confidence]

    def mark_complete(self) -> None:
        self.current_step = OnboardingStep.COMPLETE
        self.completed = True
        self.shown_candidates = []
        self.pending_strategy = None

    def confidence_deltas(self) -> list[float]:
        """Changes in confidence between consecutive answers in this category."""
        history = self.confidence_history
        return [history[i] - history[i - 1] for i in range(1, len(history))]

    def to_dict(self) -> dict:
        """Serialize state to dict for JSON storage."""
        return {
            "user_id": self.user_id,
            "current_step": self.current_step.value,
            "current_category": self.current_category,
            "selected_categories": list(self.selected_categories),
            "questions_asked": self.questions_asked,
            "completed": self.completed,
            "last_active": self.last_active,
            "revision": self.revision,
            "exclusions": list(self.exclusions),
            "shown_candidates": [c.model_dump() for c in self.shown_candidates],
            "pending_strategy": self.pending_strategy.to_dict() if self.pending_strategy else None,
            "confidence_history": list(self.confidence_history),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OnboardingSession":
        """Deserialize state from dict."""
        data = dict(data)
        if "current_step" in data:
            data["current_step"] = OnboardingStep(data["current_step"])
        data["shown_candidates"] = [
            PlaceCandidate.model_validate(c) if isinstance(c, dict) else c
            for c in data.get("shown_candidates") or []
        ]
        if isinstance(data.get("pending_strategy"), dict):
            data["pending_strategy"] = QuestionStrategy.from_dict(data["pending_strategy"])
        return cls(**data)

    def snapshot(self) -> dict:
        """Public view of the session (what getSessionState returns)."""
        return {
            "user_id": self.user_id,
            "current_step": self.current_step.value,
            "current_category": self.current_category,
            "selected_categories": list(self.selected_categories),
            "questions_asked": self.questions_asked,
            "completed": self.completed,
            "last_active": self.last_active,
        }
