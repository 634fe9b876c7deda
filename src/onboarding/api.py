"""
Onboarding API Endpoints.

Thin HTTP layer over OnboardingService. Errors raised by the service are
OnboardingError subclasses and are turned into responses by the app's
exception handler, so routes don't catch them.
"""

import logging
from functools import lru_cache
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from mila.config import settings
from mila.places.categories import CATEGORY_DEFINITIONS
from mila.places.google import GooglePlacesProvider
from mila.places.models import LocationBias
from mila.web.auth import AuthenticatedUser, get_current_user

from .candidates import CandidateSource
from .inference import LLMBioNarrator, LLMPreferenceInference
from .machine import ComparisonAnswer, OnboardingService
from .state import QuestionType
from .store import SupabaseOnboardingStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


@lru_cache
def get_onboarding_service() -> OnboardingService:
    """Production wiring: Supabase, Google Places, OpenAI."""
    provider = GooglePlacesProvider()
    return OnboardingService(
        SupabaseOnboardingStore(),
        provider,
        LLMPreferenceInference(),
        narrator=LLMBioNarrator(),
        candidates=CandidateSource.from_settings(provider),
        confidence_target=settings.confidence_target,
        max_questions=settings.max_questions_per_category,
        plateau_threshold=settings.plateau_threshold,
    )


# =============================================================================
# Request Models
# =============================================================================

QuestionTypeName = Literal["multi-select", "ab-comparison"]


class LocationRequest(BaseModel):
    place_id: str
    label: str | None = None


class SelectCategoriesRequest(BaseModel):
    categories: list[str] = Field(min_length=1)


class QuestionRequest(BaseModel):
    """Optional overrides; normally the UI echoes back the previous answer's strategy."""
    exclude_place_ids: list[str] | None = None
    message: str | None = None
    queries: list[str] | None = None
    question_type: QuestionTypeName | None = None


class ComparisonRequest(BaseModel):
    place_a_id: str
    place_b_id: str
    slider_value: int = Field(ge=1, le=10)


class AnswerRequest(BaseModel):
    question_type: QuestionTypeName
    selected_place_ids: list[str] | None = None
    comparison: ComparisonRequest | None = None


# =============================================================================
# Endpoints: session
# =============================================================================


@router.post("/initialize")
async def initialize(
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Start or restart onboarding."""
    result = await service.initialize_session(user.id)
    return {
        "success": True,
        "requires_location": result.requires_location,
        "session": result.session.snapshot(),
    }


@router.put("/location")
async def set_location(
    request: LocationRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Record the user's residential place."""
    location = await service.set_residential_place(user.id, request.place_id, request.label)
    return {"success": True, "location": location.to_dict()}


@router.get("/places/autocomplete")
async def autocomplete(
    input: str = Query(min_length=1),
    category: str | None = None,
    lat: float | None = None,
    lng: float | None = None,
    radius: int = 5000,
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Suggestions for the residential place picker or a manually added place."""
    bias = LocationBias(lat=lat, lng=lng, radius_meters=radius) if lat is not None and lng is not None else None
    suggestions = await service.autocomplete_places(input, category=category, location_bias=bias)
    return {"success": True, "suggestions": [s.model_dump() for s in suggestions]}


@router.post("/select-categories")
async def select_categories(
    request: SelectCategoriesRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    next_category = await service.select_categories(user.id, request.categories)
    return {"success": True, "next_category": next_category}


@router.post("/complete")
async def complete(
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    session = await service.complete(user.id)
    return {"success": True, "session": session.snapshot()}


@router.get("/session")
async def get_session(
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    session = await service.get_session_state(user.id)
    return {"success": True, "session": session.snapshot()}


@router.get("/bio")
async def get_bio(
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Latest BIO version."""
    profile = await service.get_profile(user.id)
    if profile is None:
        raise HTTPException(status_code=404, detail="No BIO yet")
    return {"success": True, "bio": profile.model_dump()}


@router.get("/categories")
async def list_categories():
    return {
        "categories": [
            {"id": c.id, "name": c.name, "description": c.description}
            for c in CATEGORY_DEFINITIONS
        ]
    }


# =============================================================================
# Endpoints: discover
# =============================================================================


@router.post("/get-question")
async def get_question(
    request: QuestionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    result = await service.get_question(
        user.id,
        exclude_place_ids=request.exclude_place_ids,
        override_message=request.message,
        override_queries=request.queries,
        override_question_type=QuestionType(request.question_type) if request.question_type else None,
    )
    return {"success": True, **result.to_dict()}


@router.post("/different-results")
async def different_results(
    request: QuestionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """'I don't know these places': exclude the current batch and fetch another."""
    result = await service.request_different_results(
        user.id,
        exclude_place_ids=request.exclude_place_ids,
        override_message=request.message,
        override_queries=request.queries,
        override_question_type=QuestionType(request.question_type) if request.question_type else None,
    )
    return {"success": True, **result.to_dict()}


@router.post("/submit-answer")
async def submit_answer(
    request: AnswerRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    comparison = (
        ComparisonAnswer(**request.comparison.model_dump())
        if request.comparison else None
    )
    result = await service.submit_answer(
        user.id,
        request.question_type,
        selected_place_ids=request.selected_place_ids,
        comparison=comparison,
    )
    return {"success": True, **result.to_dict()}


@router.post("/skip-category")
async def skip_category(
    user: AuthenticatedUser = Depends(get_current_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    result = await service.skip_category(user.id)
    return {"success": True, **result.to_dict()}
