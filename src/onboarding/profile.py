"""
Preference profile (BIO) models.

One logical record per user, stored as an append-only series of versions.
Each category carries the inferred keywords, attributes, a free-text style
description and a confidence score.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from mila.places.categories import category_label

# Categories at or below this confidence are left out of the bio text
MATERIALITY_THRESHOLD = 0.3

PLACEHOLDER_BIO = "User preference learning in progress."


def _unique(values: list[str]) -> list[str]:
    """Strip, drop blanks, de-duplicate case-insensitively, keep first order."""
    seen: set[str] = set()
    out = []
    for value in values:
        value = (value or "").strip()
        key = value.lower()
        if value and key not in seen:
            seen.add(key)
            out.append(value)
    return out


class CategoryPreference(BaseModel):
    """What we have learned about one category."""
    keywords: list[str] = Field(default_factory=list)
    preferred_attributes: list[str] = Field(default_factory=list)
    style_preferences: str = ""
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("keywords", "preferred_attributes")
    @classmethod
    def _dedupe(cls, v: list[str]) -> list[str]:
        return _unique(v)


class PreferenceProfile(BaseModel):
    """A single version of a user's BIO."""
    user_id: str
    version: int = Field(default=1, ge=1)
    bio_text: str = PLACEHOLDER_BIO
    categories: dict[str, CategoryPreference] = Field(default_factory=dict)
    last_updated: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def category(self, category: str) -> CategoryPreference:
        """Preference for a category, empty if it was never initialized."""
        return self.categories.get(category) or CategoryPreference()


def compose_bio_text(profile: PreferenceProfile, threshold: float = MATERIALITY_THRESHOLD) -> str:
    """
    Short digest of every category we are reasonably sure about.

    One line per material category; categories at or below `threshold` are
    omitted here but stay in the structured record.
    """
    lines = []
    for category, pref in profile.categories.items():
        if pref.confidence_score <= threshold:
            continue
        style = pref.style_preferences or "learning preferences"
        line = f"{category_label(category)}: {style}"
        if pref.keywords:
            line += f" (keywords: {', '.join(pref.keywords[:5])})"
        lines.append(line)

    return "\n".join(lines) if lines else PLACEHOLDER_BIO
