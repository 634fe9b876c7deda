"""
Candidate Sourcing.

Gets enough presentable venues for a question out of a place-search provider
that often returns fewer than asked for, repeats itself, or returns places
without photos. Knows nothing about sessions or BIOs.

Three strategies:

1. Fetch-with-photos: up to 3 oversized provider calls, keeping only unseen,
   photo-bearing places until the quota is met. Short results are returned
   as-is, never padded.
2. Radius expansion (category-only nearby lookups): if a radius yields no raw
   results at all, double it (capped at the provider maximum) and run the
   fetch-with-photos loop again, up to 5 radii.
3. Multi-query (inference-suggested search phrases): each query fetches its
   share of the quota concurrently; results are flattened, de-duplicated by
   place id (first wins) and truncated.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable

from mila.config import settings
from mila.places.categories import category_label, provider_types_for
from mila.places.models import LocationBias, PlaceCandidate
from mila.places.provider import MAX_RESULTS_PER_CALL, PlaceSearchProvider, PlacesTransportError

from .errors import InsufficientCandidates, ProviderTransportError
from .retry import RetryPolicy, retry_until
from .state import UserLocation

logger = logging.getLogger(__name__)


class FetchMode(Enum):
    NEARBY_BY_POPULARITY = "nearby-by-popularity"
    TEXT_QUERY_BIASED = "text-query-biased"


@dataclass
class CandidateBatch:
    """Candidates for one question, plus how far short of the quota they fell."""
    category: str
    required: int
    candidates: list[PlaceCandidate] = field(default_factory=list)
    raw_count: int = 0  # Provider results seen before filtering

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)

    @property
    def place_ids(self) -> list[str]:
        return [c.place_id for c in self.candidates]

    @property
    def insufficient(self) -> InsufficientCandidates | None:
        """Signal for an under-filled batch (including an empty one), else None."""
        if len(self.candidates) >= self.required:
            return None
        return InsufficientCandidates(
            f"Found {len(self.candidates)} of {self.required} {self.category} places with photos",
            required=self.required,
            found=len(self.candidates),
            category=self.category,
        )


class CandidateSource:
    """Retrying, de-duplicating, photo-filtering wrapper around a PlaceSearchProvider."""

    def __init__(
        self,
        provider: PlaceSearchProvider,
        *,
        batch_size: int = MAX_RESULTS_PER_CALL,
        fetch_attempts: int = 3,
        backoff_seconds: float = 0.1,
        radius_attempts: int = 5,
        base_radius_m: int = 5000,
        max_radius_m: int = 50000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.batch_size = batch_size
        self.fetch_policy = RetryPolicy(max_attempts=fetch_attempts, backoff_seconds=backoff_seconds)
        self.radius_policy = RetryPolicy(max_attempts=radius_attempts)
        self.base_radius_m = base_radius_m
        self.max_radius_m = max_radius_m
        self._sleep = sleep

    @classmethod
    def from_settings(cls, provider: PlaceSearchProvider) -> "CandidateSource":
        return cls(
            provider,
            batch_size=settings.places_batch_size,
            fetch_attempts=settings.fetch_attempts,
            backoff_seconds=settings.fetch_backoff_seconds,
            radius_attempts=settings.radius_attempts,
            base_radius_m=settings.places_base_radius_m,
            max_radius_m=settings.places_max_radius_m,
        )

    async def fetch(
        self,
        category: str,
        location: UserLocation,
        required_count: int,
        excluded: Iterable[str] = (),
        mode: FetchMode = FetchMode.NEARBY_BY_POPULARITY,
        queries: list[str] | None = None,
    ) -> CandidateBatch:
        """
        Up to `required_count` unseen, photo-bearing candidates.

        Raises:
            ProviderTransportError: every provider call of the fetch failed
        """
        excluded = set(excluded)

        try:
            if mode == FetchMode.TEXT_QUERY_BIASED:
                batch = await self._fetch_queries(
                    category, location, required_count, excluded,
                    queries or [category_label(category)],
                )
            else:
                batch = await self._fetch_nearby(category, location, required_count, excluded)
        except PlacesTransportError as e:
            raise ProviderTransportError(
                f"Place search for {category} failed after retries: {e}",
                category=category,
            ) from e

        if batch.insufficient:
            logger.info(f"Short batch for {category}: {len(batch)}/{required_count} ({batch.raw_count} raw)")
        return batch

    # -------------------------------------------------------------------------
    # Fetch-with-photos
    # -------------------------------------------------------------------------

    async def _fetch_with_photos(
        self,
        search: Callable[[], Awaitable[list[PlaceCandidate]]],
        required: int,
        seen: set[str],
        label: str,
    ) -> tuple[list[PlaceCandidate], int]:
        """
        Fill up to `required` from repeated calls to `search`.

        `seen` is updated in place with every accepted id.
        Returns (candidates, raw result count across attempts).
        """
        found: list[PlaceCandidate] = []
        raw = [0]

        async def attempt(n: int) -> list[PlaceCandidate]:
            results = await search()
            raw[0] += len(results)
            for place in results:
                if place.place_id in seen or not place.has_photos:
                    continue
                seen.add(place.place_id)
                found.append(place)
            return found

        await retry_until(
            attempt,
            policy=self.fetch_policy,
            done=lambda acc: len(acc) >= required,
            retry_on=(PlacesTransportError,),
            sleep=self._sleep,
            label=label,
        )
        return found[:required], raw[0]

    # -------------------------------------------------------------------------
    # Radius expansion
    # -------------------------------------------------------------------------

    async def _fetch_nearby(
        self,
        category: str,
        location: UserLocation,
        required: int,
        excluded: set[str],
    ) -> CandidateBatch:
        seen = set(excluded)
        radius = [self.base_radius_m]
        included_types = provider_types_for(category)

        async def attempt(n: int) -> CandidateBatch:
            candidates, raw = await self._fetch_with_photos(
                lambda: self.provider.search_nearby(
                    location.lat, location.lng, radius[0], included_types, self.batch_size,
                ),
                required,
                seen,
                label=f"nearby {category} r={radius[0]}",
            )
            return CandidateBatch(category=category, required=required, candidates=candidates, raw_count=raw)

        def grow(n: int, batch: CandidateBatch | None) -> None:
            radius[0] = min(radius[0] * 2, self.max_radius_m)
            logger.info(f"No {category} results, widening search radius to {radius[0]}m")

        return await retry_until(
            attempt,
            policy=self.radius_policy,
            done=lambda b: b.raw_count > 0 or radius[0] >= self.max_radius_m,
            before_retry=grow,
            sleep=self._sleep,
            label=f"radius {category}",
        )

    # -------------------------------------------------------------------------
    # Multi-query
    # -------------------------------------------------------------------------

    async def _fetch_queries(
        self,
        category: str,
        location: UserLocation,
        required: int,
        excluded: set[str],
        queries: list[str],
    ) -> CandidateBatch:
        per_query = math.ceil(required / len(queries))
        bias = LocationBias(lat=location.lat, lng=location.lng, radius_meters=self.base_radius_m)

        async def run_query(query: str) -> tuple[list[PlaceCandidate], int]:
            text = f"{query} {category_label(category)} {location.label}".strip()
            return await self._fetch_with_photos(
                lambda: self.provider.search_text(text, location_bias=bias, max_results=self.batch_size),
                per_query,
                set(excluded),
                label=f"query '{text}'",
            )

        results = await asyncio.gather(*(run_query(q) for q in queries), return_exceptions=True)

        failures = [r for r in results if isinstance(r, BaseException)]
        for failure in failures:
            if not isinstance(failure, PlacesTransportError):
                raise failure
        if len(failures) == len(results):
            raise failures[-1]
        for failure in failures:
            logger.warning(f"One {category} query failed, continuing with the rest: {failure}")

        merged: list[PlaceCandidate] = []
        seen: set[str] = set()
        raw_total = 0
        for result in results:
            if isinstance(result, BaseException):
                continue
            candidates, raw = result
            raw_total += raw
            for place in candidates:
                if place.place_id not in seen:
                    seen.add(place.place_id)
                    merged.append(place)

        return CandidateBatch(
            category=category,
            required=required,
            candidates=merged[:required],
            raw_count=raw_total,
        )
