"""
Mila - Place search.

PlaceSearchProvider is the interface the onboarding engine consumes;
GooglePlacesProvider is the production implementation.
"""

from mila.places.models import (
    AutocompleteSuggestion,
    GeoPoint,
    LocationBias,
    OpeningHours,
    PlaceCandidate,
    PlaceReview,
)
from mila.places.provider import PlaceSearchProvider, PlacesTransportError

__all__ = [
    "AutocompleteSuggestion",
    "GeoPoint",
    "LocationBias",
    "OpeningHours",
    "PlaceCandidate",
    "PlaceReview",
    "PlaceSearchProvider",
    "PlacesTransportError",
]
