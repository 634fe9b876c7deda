"""
Place models shared by the provider adapter and the onboarding engine.
"""

from pydantic import BaseModel, Field, field_validator

MAX_PHOTOS = 4
MAX_REVIEWS = 3


class GeoPoint(BaseModel):
    lat: float
    lng: float


class LocationBias(BaseModel):
    """Circle used to bias (not restrict) text and autocomplete searches."""
    lat: float
    lng: float
    radius_meters: int = 5000


class PlaceReview(BaseModel):
    text: str = ""
    rating: float = 0
    author_name: str = "Anonymous"


class OpeningHours(BaseModel):
    open_now: bool | None = None
    weekday_text: list[str] = Field(default_factory=list)


# Boolean amenity flags and how they read in a prompt
AMENITY_LABELS: dict[str, str] = {
    "outdoor_seating": "outdoor seating",
    "allows_dogs": "dog friendly",
    "dine_in": "dine-in",
    "takeout": "takeout",
    "delivery": "delivery",
    "serves_coffee": "serves coffee",
    "good_for_groups": "good for groups",
    "serves_breakfast": "breakfast",
    "serves_brunch": "brunch",
    "serves_vegetarian_food": "vegetarian options",
}


class PlaceCandidate(BaseModel):
    """
    A venue as shown in an onboarding question.

    Ephemeral: fetched per question and kept only on the session's
    currently-shown batch.
    """
    place_id: str
    display_name: str = ""
    address: str = ""
    rating: float = 0
    photos: list[str] = Field(default_factory=list)
    reviews: list[PlaceReview] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)
    price_level: int | None = None
    opening_hours: OpeningHours | None = None
    location: GeoPoint | None = None

    outdoor_seating: bool | None = None
    allows_dogs: bool | None = None
    dine_in: bool | None = None
    takeout: bool | None = None
    delivery: bool | None = None
    serves_coffee: bool | None = None
    good_for_groups: bool | None = None
    serves_breakfast: bool | None = None
    serves_brunch: bool | None = None
    serves_vegetarian_food: bool | None = None

    @field_validator("photos")
    @classmethod
    def _truncate_photos(cls, v: list[str]) -> list[str]:
        return v[:MAX_PHOTOS]

    @field_validator("reviews")
    @classmethod
    def _truncate_reviews(cls, v: list[PlaceReview]) -> list[PlaceReview]:
        return v[:MAX_REVIEWS]

    @property
    def has_photos(self) -> bool:
        return bool(self.photos)

    def attributes(self) -> list[str]:
        """Human-readable amenities this place is known to have."""
        return [label for field, label in AMENITY_LABELS.items() if getattr(self, field)]


class AutocompleteSuggestion(BaseModel):
    place_id: str
    description: str = ""
