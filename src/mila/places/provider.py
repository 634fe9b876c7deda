"""
Place Search Provider Protocol.

The onboarding engine only ever talks to this interface. The Google Places
adapter in mila.places.google is the production implementation; tests use
in-memory fakes.

All calls are idempotent reads. Empty or short result lists are normal and
are handled by the caller, not treated as errors. Transport and HTTP
failures are raised as PlacesTransportError.
"""

from typing import Protocol, runtime_checkable

from mila.places.models import AutocompleteSuggestion, LocationBias, PlaceCandidate

# Provider-side cap on results per search call
MAX_RESULTS_PER_CALL = 20

# Autocomplete accepts at most this many primary types
MAX_AUTOCOMPLETE_TYPES = 5


class PlacesTransportError(Exception):
    """A place-search call failed (network, timeout, non-2xx response)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@runtime_checkable
class PlaceSearchProvider(Protocol):
    """Read-only access to a place-search backend."""

    async def search_nearby(
        self,
        lat: float,
        lng: float,
        radius_meters: int,
        included_types: list[str],
        max_results: int = MAX_RESULTS_PER_CALL,
    ) -> list[PlaceCandidate]:
        """Places inside a circle, ranked by popularity."""
        ...

    async def search_text(
        self,
        query: str,
        location_bias: LocationBias | None = None,
        included_type: str | None = None,
        strict_type_filtering: bool = True,
        max_results: int = MAX_RESULTS_PER_CALL,
    ) -> list[PlaceCandidate]:
        """Free-text search biased toward a location."""
        ...

    async def place_details(
        self,
        place_id: str,
        field_mask: str | None = None,
    ) -> PlaceCandidate | None:
        """Details for one place, or None if the provider doesn't know it."""
        ...

    async def autocomplete(
        self,
        input_text: str,
        included_primary_types: list[str],
        location_bias: LocationBias | None = None,
    ) -> list[AutocompleteSuggestion]:
        """Typeahead suggestions."""
        ...
