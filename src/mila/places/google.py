"""
Google Places (New) adapter.

Implements PlaceSearchProvider over the v1 REST API with httpx. Responses are
transformed into PlaceCandidate; photo resource names become media URLs.
"""

import logging
from typing import Any

import httpx

from mila.config import settings
from mila.places.models import (
    AutocompleteSuggestion,
    GeoPoint,
    LocationBias,
    OpeningHours,
    PlaceCandidate,
    PlaceReview,
)
from mila.places.provider import (
    MAX_AUTOCOMPLETE_TYPES,
    MAX_RESULTS_PER_CALL,
    PlacesTransportError,
)

logger = logging.getLogger(__name__)

_PLACE_FIELDS = [
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "types",
    "primaryType",
    "rating",
    "photos",
    "reviews",
    "priceLevel",
    "regularOpeningHours",
]

# Search endpoints want the 'places.' prefix, the details GET does not
ONBOARDING_FIELDS = ",".join(f"places.{f}" for f in _PLACE_FIELDS)
ONBOARDING_FIELDS_GET = ",".join(_PLACE_FIELDS)

_PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}

_AMENITY_FIELDS = {
    "outdoorSeating": "outdoor_seating",
    "allowsDogs": "allows_dogs",
    "dineIn": "dine_in",
    "takeout": "takeout",
    "delivery": "delivery",
    "servesCoffee": "serves_coffee",
    "goodForGroups": "good_for_groups",
    "servesBreakfast": "serves_breakfast",
    "servesBrunch": "serves_brunch",
    "servesVegetarianFood": "serves_vegetarian_food",
}


def _parse_price_level(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return _PRICE_LEVELS.get(str(value))


def _circle(bias: LocationBias) -> dict:
    return {
        "circle": {
            "center": {"latitude": bias.lat, "longitude": bias.lng},
            "radius": bias.radius_meters,
        }
    }


class GooglePlacesProvider:
    """
    PlaceSearchProvider backed by Google Places API (New).

    Pass `client` to reuse a connection pool or inject a mock transport.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.google_places_api_key
        self.base_url = (base_url or settings.google_places_base_url).rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.places_timeout_seconds,
        )

        if not self.api_key:
            logger.warning("GOOGLE_PLACES_API_KEY not set. Place search will fail.")

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _headers(self, field_mask: str | None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
        }
        if field_mask:
            headers["X-Goog-FieldMask"] = field_mask
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        field_mask: str | None = None,
        body: dict | None = None,
        allow_not_found: bool = False,
    ) -> dict | None:
        if not self.api_key:
            raise PlacesTransportError("Google Places API key not configured")

        url = f"{self.base_url}/{path}"
        try:
            response = await self._client.request(
                method, url, headers=self._headers(field_mask), json=body,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Google Places {path} transport error: {e}")
            raise PlacesTransportError(f"Google Places request failed: {e}") from e

        if allow_not_found and response.status_code == 404:
            return None

        if response.status_code >= 400:
            logger.warning(f"Google Places {path} returned {response.status_code}: {response.text[:200]}")
            raise PlacesTransportError(
                f"Google Places API error: {response.status_code}",
                status_code=response.status_code,
            )

        return response.json()

    # -------------------------------------------------------------------------
    # Transform
    # -------------------------------------------------------------------------

    def _photo_url(self, photo_name: str) -> str:
        return f"{self.base_url}/{photo_name}/media?key={self.api_key}&maxWidthPx=800&maxHeightPx=800"

    def transform_place(self, place: dict) -> PlaceCandidate:
        """Google place JSON -> PlaceCandidate."""
        location = place.get("location")
        hours = place.get("regularOpeningHours")

        reviews = []
        for review in (place.get("reviews") or []):
            text = review.get("text")
            if isinstance(text, dict):
                text = text.get("text", "")
            reviews.append(PlaceReview(
                text=text or "",
                rating=review.get("rating") or 0,
                author_name=(review.get("authorAttribution") or {}).get("displayName") or "Anonymous",
            ))

        amenities = {
            ours: place[theirs] for theirs, ours in _AMENITY_FIELDS.items() if theirs in place
        }

        return PlaceCandidate(
            place_id=place.get("id", ""),
            display_name=(place.get("displayName") or {}).get("text", ""),
            address=place.get("formattedAddress") or "",
            rating=place.get("rating") or 0,
            photos=[self._photo_url(p["name"]) for p in (place.get("photos") or []) if p.get("name")],
            reviews=reviews,
            types=place.get("types") or [],
            price_level=_parse_price_level(place.get("priceLevel")),
            opening_hours=OpeningHours(
                open_now=hours.get("openNow"),
                weekday_text=hours.get("weekdayDescriptions") or [],
            ) if hours else None,
            location=GeoPoint(lat=location["latitude"], lng=location["longitude"]) if location else None,
            **amenities,
        )

    # -------------------------------------------------------------------------
    # PlaceSearchProvider
    # -------------------------------------------------------------------------

    async def search_nearby(
        self,
        lat: float,
        lng: float,
        radius_meters: int,
        included_types: list[str],
        max_results: int = MAX_RESULTS_PER_CALL,
    ) -> list[PlaceCandidate]:
        body: dict[str, Any] = {
            "locationRestriction": _circle(LocationBias(lat=lat, lng=lng, radius_meters=radius_meters)),
            "maxResultCount": min(max_results, MAX_RESULTS_PER_CALL),
            "rankPreference": "POPULARITY",
        }
        if included_types:
            body["includedTypes"] = included_types

        data = await self._request("POST", "places:searchNearby", field_mask=ONBOARDING_FIELDS, body=body)
        return [self.transform_place(p) for p in (data or {}).get("places", [])]

    async def search_text(
        self,
        query: str,
        location_bias: LocationBias | None = None,
        included_type: str | None = None,
        strict_type_filtering: bool = True,
        max_results: int = MAX_RESULTS_PER_CALL,
    ) -> list[PlaceCandidate]:
        body: dict[str, Any] = {
            "textQuery": query,
            "maxResultCount": min(max_results, MAX_RESULTS_PER_CALL),
        }
        if location_bias:
            body["locationBias"] = _circle(location_bias)
        if included_type:
            body["includedType"] = included_type
            if strict_type_filtering:
                body["strictTypeFiltering"] = True

        data = await self._request("POST", "places:searchText", field_mask=ONBOARDING_FIELDS, body=body)
        return [self.transform_place(p) for p in (data or {}).get("places", [])]

    async def place_details(
        self,
        place_id: str,
        field_mask: str | None = None,
    ) -> PlaceCandidate | None:
        data = await self._request(
            "GET",
            f"places/{place_id}",
            field_mask=field_mask or ONBOARDING_FIELDS_GET,
            allow_not_found=True,
        )
        if data is None:
            logger.info(f"Place not found: {place_id}")
            return None
        data.setdefault("id", place_id)
        return self.transform_place(data)

    async def autocomplete(
        self,
        input_text: str,
        included_primary_types: list[str],
        location_bias: LocationBias | None = None,
    ) -> list[AutocompleteSuggestion]:
        body: dict[str, Any] = {"input": input_text}

        # Only send the filter when there is something to filter by
        primary_types = included_primary_types[:MAX_AUTOCOMPLETE_TYPES]
        if primary_types:
            body["includedPrimaryTypes"] = primary_types
        if location_bias:
            body["locationBias"] = _circle(location_bias)

        data = await self._request("POST", "places:autocomplete", body=body)

        suggestions = []
        for suggestion in (data or {}).get("suggestions", []):
            prediction = suggestion.get("placePrediction") or {}
            if not prediction.get("placeId"):
                continue
            suggestions.append(AutocompleteSuggestion(
                place_id=prediction["placeId"],
                description=(prediction.get("text") or {}).get("text", ""),
            ))
        return suggestions
