"""
Answer evidence handed to the preference update step.

Two shapes, one per question type:
- MultiSelectEvidence: the presented batch split into selected / rejected
- ComparisonEvidence: an A/B pair with a 1-10 slider (1 = strongly A, 10 = strongly B)
"""

from typing import Literal, Union

from pydantic import BaseModel, Field, computed_field

from mila.places.models import PlaceCandidate

NEUTRAL_SLIDER = 5


class PlaceSelection(BaseModel):
    place: PlaceCandidate
    selected: bool


class MultiSelectEvidence(BaseModel):
    kind: Literal["multi-select"] = "multi-select"
    selections: list[PlaceSelection] = Field(default_factory=list)

    @property
    def selected(self) -> list[PlaceCandidate]:
        return [s.place for s in self.selections if s.selected]

    @property
    def rejected(self) -> list[PlaceCandidate]:
        return [s.place for s in self.selections if not s.selected]

    @property
    def place_ids(self) -> list[str]:
        return [s.place.place_id for s in self.selections]


class ComparisonEvidence(BaseModel):
    kind: Literal["ab-comparison"] = "ab-comparison"
    place_a: PlaceCandidate
    place_b: PlaceCandidate
    slider_value: int = Field(ge=1, le=10)

    @computed_field
    @property
    def strength(self) -> float:
        """0 at the midpoint. The scale is lopsided: 0.8 at 1, 1.0 at 10."""
        return abs(self.slider_value - NEUTRAL_SLIDER) / NEUTRAL_SLIDER

    @computed_field
    @property
    def preference(self) -> Literal["place_a", "place_b", "neutral"]:
        if self.slider_value < NEUTRAL_SLIDER:
            return "place_a"
        if self.slider_value > NEUTRAL_SLIDER:
            return "place_b"
        return "neutral"

    @property
    def preferred(self) -> PlaceCandidate | None:
        return {"place_a": self.place_a, "place_b": self.place_b}.get(self.preference)

    @property
    def place_ids(self) -> list[str]:
        return [self.place_a.place_id, self.place_b.place_id]


Evidence = Union[MultiSelectEvidence, ComparisonEvidence]
