"""
Place category catalog.

A category is the bucket a user is interviewed about. Its id is a Google
Places type; `provider_types` lists every type a nearby search should include.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CategoryInfo:
    id: str
    name: str
    description: str
    provider_types: list[str] = field(default_factory=list)


CATEGORY_DEFINITIONS: list[CategoryInfo] = [
    CategoryInfo("cafe", "Cafes", "Coffee houses and casual cafes", ["cafe"]),
    CategoryInfo("coffee_shop", "Coffee Shops", "Specialty coffee and espresso bars", ["coffee_shop"]),
    CategoryInfo("restaurant", "Restaurants", "Dining establishments", ["restaurant"]),
    CategoryInfo("bar", "Bars", "Bars and pubs", ["bar"]),
    CategoryInfo("night_club", "Nightlife", "Nightclubs and entertainment venues", ["night_club"]),
    CategoryInfo("museum", "Museums", "Museums and cultural institutions", ["museum"]),
    CategoryInfo("art_gallery", "Art Galleries", "Art galleries and exhibitions", ["art_gallery"]),
    CategoryInfo("park", "Parks", "Parks and green spaces", ["park"]),
    CategoryInfo("tourist_attraction", "Attractions", "Tourist attractions and landmarks", ["tourist_attraction"]),
    CategoryInfo(
        "store", "Shopping", "Retail stores and shopping",
        ["store", "shopping_mall", "clothing_store", "book_store"],
    ),
    CategoryInfo(
        "movie_theater", "Entertainment", "Entertainment venues",
        ["movie_theater", "bowling_alley", "amusement_park"],
    ),
    CategoryInfo("library", "Libraries", "Public libraries", ["library"]),
    CategoryInfo("bakery", "Bakeries", "Bakeries and pastry shops", ["bakery"]),
    CategoryInfo("gym", "Fitness", "Gyms and fitness centers", ["gym"]),
    CategoryInfo("spa", "Wellness", "Spas and wellness centers", ["spa"]),
]

_BY_ID = {c.id: c for c in CATEGORY_DEFINITIONS}


def is_known_category(category_id: str) -> bool:
    return category_id in _BY_ID


def provider_types_for(category_id: str) -> list[str]:
    """Types to include in a nearby search. Unknown ids are passed through as-is."""
    info = _BY_ID.get(category_id)
    return list(info.provider_types) if info else [category_id]


def category_label(category_id: str) -> str:
    """Lowercase phrase for prompts and search text, e.g. 'coffee shop'."""
    return category_id.replace("_", " ")
