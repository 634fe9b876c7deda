"""
Onboarding Session Machine.

    location -> categories -> discover(category 1 .. n) -> complete

`discover` cycles per category: get_question -> (user answers) ->
submit_answer -> stop or ask again. Stopping, or skipping, advances to the
next selected category; running out of categories completes the session.

The session is an explicit record loaded and saved through the store on
every call. Mutating calls for one user run under a per-user lock, and every
save is a compare-and-swap on the session revision, so a second process
writing the same session gets SessionConflict instead of a lost update.
"""

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from mila.places.categories import is_known_category, provider_types_for
from mila.places.models import AutocompleteSuggestion, LocationBias, PlaceCandidate
from mila.places.provider import PlaceSearchProvider, PlacesTransportError

from .bio_store import ProfileStore
from .candidates import CandidateSource, FetchMode
from .coordinator import PreferenceUpdateCoordinator
from .errors import (
    InsufficientCandidates,
    InvalidAnswer,
    InvalidTransition,
    ProfileNotInitialized,
    ProviderTransportError,
    SessionNotFound,
)
from .evidence import ComparisonEvidence, Evidence, MultiSelectEvidence, PlaceSelection
from .inference import BioNarrator, PreferenceInferenceService
from .messages import MessageSelector, choose_message_type
from .profile import PreferenceProfile
from .state import OnboardingSession, OnboardingStep, QuestionType, UserLocation, normalize_queries
from .stopping import (
    CONFIDENCE_TARGET,
    MAX_QUESTIONS_PER_CATEGORY,
    PLATEAU_THRESHOLD,
    StopReason,
    stop_reason,
)
from .store import OnboardingStore

logger = logging.getLogger(__name__)

MULTI_SELECT_COUNT = 4
AB_COMPARISON_COUNT = 2

# Residential place picker searches towns and regions
RESIDENTIAL_PLACE_TYPES = ["locality", "administrative_area_level_1"]


# =============================================================================
# Results
# =============================================================================

@dataclass
class InitializeResult:
    requires_location: bool
    session: OnboardingSession


@dataclass
class QuestionResult:
    question_type: QuestionType
    question_number: int
    message: str
    candidates: list[PlaceCandidate]
    category: str
    insufficient_candidates: InsufficientCandidates | None = None

    def to_dict(self) -> dict:
        return {
            "question_type": self.question_type.value,
            "question_number": self.question_number,
            "message": self.message,
            "candidates": [c.model_dump() for c in self.candidates],
            "category": self.category,
            "insufficient_candidates": (
                {"required": self.insufficient_candidates.required, "found": self.insufficient_candidates.found}
                if self.insufficient_candidates else None
            ),
        }


@dataclass
class AdvanceResult:
    category_complete: bool = True
    next_category: str | None = None
    onboarding_complete: bool = False

    def to_dict(self) -> dict:
        return {
            "category_complete": self.category_complete,
            "next_category": self.next_category,
            "onboarding_complete": self.onboarding_complete,
        }


@dataclass
class AnswerResult:
    confidence_score: float
    questions_asked: int
    should_continue: bool
    next_question_type: QuestionType | None = None
    next_queries: list[str] = field(default_factory=list)
    next_message: str | None = None
    stop_reason: StopReason | None = None
    advance: AdvanceResult | None = None

    def to_dict(self) -> dict:
        data = {
            "confidence_score": self.confidence_score,
            "questions_asked": self.questions_asked,
            "should_continue": self.should_continue,
            "next_question_type": self.next_question_type.value if self.next_question_type else None,
            "next_queries": list(self.next_queries),
            "next_message": self.next_message,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
        }
        data.update((self.advance or AdvanceResult(category_complete=False)).to_dict())
        return data


@dataclass
class ComparisonAnswer:
    place_a_id: str
    place_b_id: str
    slider_value: int


@dataclass
class _UserLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


# =============================================================================
# Service
# =============================================================================

class OnboardingService:
    """Every onboarding operation, keyed by user id."""

    def __init__(
        self,
        store: OnboardingStore,
        provider: PlaceSearchProvider,
        inference: PreferenceInferenceService,
        *,
        narrator: BioNarrator | None = None,
        candidates: CandidateSource | None = None,
        messages: MessageSelector | None = None,
        rng: random.Random | None = None,
        confidence_target: float = CONFIDENCE_TARGET,
        max_questions: int = MAX_QUESTIONS_PER_CATEGORY,
        plateau_threshold: float = PLATEAU_THRESHOLD,
    ):
        self.store = store
        self.provider = provider
        self.profiles = ProfileStore(store)
        self.coordinator = PreferenceUpdateCoordinator(self.profiles, inference, narrator)
        self.candidates = candidates or CandidateSource(provider)
        self.rng = rng or random.Random()
        self.messages = messages or MessageSelector(rng=self.rng)
        self.thresholds = {
            "confidence_target": confidence_target,
            "max_questions": max_questions,
            "plateau_threshold": plateau_threshold,
        }
        self._locks: dict[str, _UserLock] = {}

    # -------------------------------------------------------------------------
    # Session plumbing
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _user_lock(self, user_id: str):
        """Serialize calls for one user. The lock is dropped once nobody holds or waits on it."""
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _UserLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[user_id]

    async def _load(self, user_id: str) -> OnboardingSession:
        session = await self.store.get_session(user_id)
        if session is None:
            raise SessionNotFound(f"No onboarding session for {user_id}", user_id=user_id)
        return session

    async def _save(self, session: OnboardingSession) -> OnboardingSession:
        return await self.store.put_session(session, expected_revision=session.revision)

    def _require_discover(self, session: OnboardingSession, operation: str) -> str:
        if session.current_step != OnboardingStep.DISCOVER or session.current_category is None:
            raise InvalidTransition(
                f"Cannot {operation} in step '{session.current_step.value}'",
                user_id=session.user_id,
                category=session.current_category,
                step=session.current_step.value,
            )
        return session.current_category

    async def _require_location(self, session: OnboardingSession) -> UserLocation:
        location = await self.store.get_location(session.user_id)
        if location is None:
            raise InvalidTransition(
                "Residential place not set",
                user_id=session.user_id,
                category=session.current_category,
                step=session.current_step.value,
            )
        return location

    # -------------------------------------------------------------------------
    # location / categories
    # -------------------------------------------------------------------------

    async def initialize_session(self, user_id: str) -> InitializeResult:
        """Start (or restart) onboarding. Overwrites any existing session."""
        async with self._user_lock(user_id):
            location = await self.store.get_location(user_id)
            step = OnboardingStep.LOCATION if location is None else OnboardingStep.CATEGORIES
            session = await self.store.put_session(OnboardingSession(user_id=user_id, current_step=step))

        logger.info(f"Initialized onboarding for {user_id} at step {step.value}")
        return InitializeResult(requires_location=location is None, session=session)

    async def set_residential_place(self, user_id: str, place_id: str, label: str | None = None) -> UserLocation:
        """Record where the user lives; moves a session waiting on it to `categories`."""
        try:
            place = await self.provider.place_details(place_id)
        except PlacesTransportError as e:
            raise ProviderTransportError(f"Could not look up place {place_id}: {e}", user_id=user_id) from e

        if place is None or place.location is None:
            raise InvalidAnswer(f"Unknown place: {place_id}", user_id=user_id, step=OnboardingStep.LOCATION.value)

        location = UserLocation(
            user_id=user_id,
            place_id=place_id,
            label=label or place.display_name or place.address,
            lat=place.location.lat,
            lng=place.location.lng,
        )

        async with self._user_lock(user_id):
            await self.store.put_location(location)
            session = await self.store.get_session(user_id)
            if session is not None and session.current_step == OnboardingStep.LOCATION:
                session.current_step = OnboardingStep.CATEGORIES
                await self._save(session)

        logger.info(f"Residential place for {user_id}: {location.label}")
        return location

    async def autocomplete_places(
        self,
        text: str,
        category: str | None = None,
        location_bias: LocationBias | None = None,
    ) -> list[AutocompleteSuggestion]:
        """
        Place suggestions for free-text input.

        Without a category this searches towns (residential place picker);
        with one it searches that category's venue types (manual add-place).
        """
        if not text.strip():
            raise InvalidAnswer("Autocomplete input is required")
        types = provider_types_for(category) if category else RESIDENTIAL_PLACE_TYPES
        try:
            return await self.provider.autocomplete(text.strip(), types, location_bias)
        except PlacesTransportError as e:
            raise ProviderTransportError(f"Autocomplete failed: {e}", category=category) from e

    async def select_categories(self, user_id: str, categories: list[str]) -> str:
        """
        Pick the categories to interview about, in order. Returns the first.

        Initializes a fresh BIO for exactly these categories.
        """
        selected = list(dict.fromkeys(c.strip() for c in categories if c and c.strip()))
        if not selected:
            raise InvalidAnswer("Select at least one category", user_id=user_id, step=OnboardingStep.CATEGORIES.value)
        unknown = [c for c in selected if not is_known_category(c)]
        if unknown:
            raise InvalidAnswer(
                f"Unknown categories: {', '.join(unknown)}",
                user_id=user_id,
                step=OnboardingStep.CATEGORIES.value,
            )

        async with self._user_lock(user_id):
            session = await self._load(user_id)
            if session.current_step != OnboardingStep.CATEGORIES:
                raise InvalidTransition(
                    f"Cannot select categories in step '{session.current_step.value}'",
                    user_id=user_id,
                    step=session.current_step.value,
                )

            await self.profiles.initialize(user_id, selected)

            session.selected_categories = selected
            session.current_step = OnboardingStep.DISCOVER
            session.start_category(selected[0])
            await self._save(session)

        logger.info(f"{user_id} selected {len(selected)} categories, starting with {selected[0]}")
        return selected[0]

    # -------------------------------------------------------------------------
    # discover
    # -------------------------------------------------------------------------

    async def get_question(
        self,
        user_id: str,
        exclude_place_ids: list[str] | None = None,
        override_message: str | None = None,
        override_queries: list[str] | None = None,
        override_question_type: QuestionType | None = None,
    ) -> QuestionResult:
        """
        Next question for the current category.

        `questions_asked` is not bumped here; only an answer counts.
        """
        async with self._user_lock(user_id):
            session = await self._load(user_id)
            if exclude_place_ids:
                session.exclude(exclude_place_ids)
            return await self._ask(session, override_message, override_queries, override_question_type)

    async def request_different_results(
        self,
        user_id: str,
        exclude_place_ids: list[str] | None = None,
        override_message: str | None = None,
        override_queries: list[str] | None = None,
        override_question_type: QuestionType | None = None,
    ) -> QuestionResult:
        """Exclude everything currently shown and ask again. Not an answer."""
        async with self._user_lock(user_id):
            session = await self._load(user_id)
            self._require_discover(session, "request different results")
            session.exclude(session.shown_place_ids)
            if exclude_place_ids:
                session.exclude(exclude_place_ids)
            return await self._ask(session, override_message, override_queries, override_question_type)

    async def _ask(
        self,
        session: OnboardingSession,
        override_message: str | None,
        override_queries: list[str] | None,
        override_question_type: QuestionType | None,
    ) -> QuestionResult:
        category = self._require_discover(session, "get a question")
        location = await self._require_location(session)
        question_number = session.questions_asked + 1
        strategy = session.pending_strategy

        # A batch that was on screen is never shown again in this category
        session.exclude(session.shown_place_ids)

        if question_number == 1:
            question_type = QuestionType.MULTI_SELECT
            queries: list[str] = []
            provided = override_message
        else:
            question_type = override_question_type or (
                strategy.question_type if strategy else QuestionType.MULTI_SELECT
            )
            queries = normalize_queries(override_queries) if override_queries is not None else (
                strategy.queries if strategy else []
            )
            provided = override_message or (strategy.message if strategy else None)

        required = AB_COMPARISON_COUNT if question_type == QuestionType.AB_COMPARISON else MULTI_SELECT_COUNT
        mode = FetchMode.TEXT_QUERY_BIASED if queries else FetchMode.NEARBY_BY_POPULARITY

        try:
            batch = await self.candidates.fetch(category, location, required, session.exclusions, mode, queries)
        except ProviderTransportError as e:
            e.user_id, e.step = session.user_id, session.current_step.value
            raise

        message_type = choose_message_type(question_number, question_type, bool(queries), self.rng)
        message = self.messages.select(message_type, category, city=location.label, provided=provided)

        session.shown_candidates = list(batch.candidates)
        await self._save(session)

        logger.info(
            f"Question {question_number} for {session.user_id}/{category}: "
            f"{question_type.value}, {len(batch)} candidates via {mode.value}"
        )
        return QuestionResult(
            question_type=question_type,
            question_number=question_number,
            message=message,
            candidates=batch.candidates,
            category=category,
            insufficient_candidates=batch.insufficient,
        )

    async def submit_answer(
        self,
        user_id: str,
        question_type: QuestionType | str,
        selected_place_ids: list[str] | None = None,
        comparison: ComparisonAnswer | None = None,
    ) -> AnswerResult:
        """
        Record an answer, update the BIO, then continue, advance or complete.

        Raises:
            SessionNotFound, InvalidAnswer
            InvalidTransition: onboarding already complete
            ProfileNotInitialized: no BIO (categories never selected)
            InferenceFailure: BIO and session are left as they were
        """
        async with self._user_lock(user_id):
            session = await self._load(user_id)
            if session.current_step in (OnboardingStep.LOCATION, OnboardingStep.CATEGORIES):
                raise ProfileNotInitialized(
                    "Select categories before answering",
                    user_id=user_id,
                    step=session.current_step.value,
                )
            category = self._require_discover(session, "submit an answer")

            try:
                question_type = QuestionType(question_type)
            except ValueError:
                raise InvalidAnswer(
                    f"Unknown question type: {question_type}",
                    user_id=user_id, category=category, step=session.current_step.value,
                ) from None

            evidence = await self._build_evidence(session, question_type, selected_place_ids, comparison)
            update = await self.coordinator.update(user_id, category, evidence)

            session.questions_asked += 1
            session.confidence_history.append(update.confidence_score)
            session.exclude(session.shown_place_ids + evidence.place_ids)
            session.shown_candidates = []

            reason = stop_reason(
                update.confidence_score,
                session.questions_asked,
                session.confidence_deltas(),
                **self.thresholds,
            )
            strategy = update.next_strategy

            result = AnswerResult(
                confidence_score=update.confidence_score,
                questions_asked=session.questions_asked,
                should_continue=reason is None and strategy is not None,
                stop_reason=reason,
            )
            if result.should_continue:
                session.pending_strategy = strategy
                result.next_question_type = strategy.question_type
                result.next_queries = list(strategy.queries)
                result.next_message = strategy.message
            else:
                result.advance = self._advance(session, update.profile)

            await self._save(session)

        logger.info(
            f"Answer {result.questions_asked} for {user_id}/{category}: confidence "
            f"{result.confidence_score:.2f}, {'continue' if result.should_continue else (reason.value if reason else 'no strategy')}"
        )
        return result

    async def _build_evidence(
        self,
        session: OnboardingSession,
        question_type: QuestionType,
        selected_place_ids: list[str] | None,
        comparison: ComparisonAnswer | None,
    ) -> Evidence:
        shown = {c.place_id: c for c in session.shown_candidates}

        if question_type == QuestionType.AB_COMPARISON:
            if comparison is None:
                raise self._invalid(session, "A/B answer needs a comparison")
            if not 1 <= comparison.slider_value <= 10:
                raise self._invalid(session, f"Slider value must be 1-10, got {comparison.slider_value}")
            return ComparisonEvidence(
                place_a=await self._resolve_place(session, shown, comparison.place_a_id),
                place_b=await self._resolve_place(session, shown, comparison.place_b_id),
                slider_value=comparison.slider_value,
            )

        selected_ids = list(dict.fromkeys(selected_place_ids or []))
        if not shown and not selected_ids:
            raise self._invalid(session, "No question is waiting for an answer")

        selections = [PlaceSelection(place=place, selected=place_id in selected_ids) for place_id, place in shown.items()]
        for place_id in selected_ids:
            if place_id not in shown:
                selections.append(PlaceSelection(
                    place=await self._resolve_place(session, shown, place_id),
                    selected=True,
                ))
        return MultiSelectEvidence(selections=selections)

    async def _resolve_place(
        self,
        session: OnboardingSession,
        shown: dict[str, PlaceCandidate],
        place_id: str,
    ) -> PlaceCandidate:
        """A place from the batch on screen, else looked up (manually added places)."""
        if place_id in shown:
            return shown[place_id]
        try:
            place = await self.provider.place_details(place_id)
        except PlacesTransportError as e:
            raise ProviderTransportError(
                f"Could not look up place {place_id}: {e}",
                user_id=session.user_id,
                category=session.current_category,
                step=session.current_step.value,
            ) from e
        if place is None:
            raise self._invalid(session, f"Unknown place: {place_id}")
        return place

    def _invalid(self, session: OnboardingSession, message: str) -> InvalidAnswer:
        return InvalidAnswer(
            message,
            user_id=session.user_id,
            category=session.current_category,
            step=session.current_step.value,
        )

    def _advance(self, session: OnboardingSession, profile: PreferenceProfile | None) -> AdvanceResult:
        """Move to the next selected category, or complete if there is none."""
        finished = session.current_category
        next_category = session.next_category()

        if next_category is None:
            session.mark_complete()
            logger.info(f"{session.user_id} finished {finished}; onboarding complete")
            return AdvanceResult(category_complete=True, onboarding_complete=True)

        initial = profile.category(next_category).confidence_score if profile else 0.0
        session.start_category(next_category, initial_confidence=initial)
        logger.info(f"{session.user_id} finished {finished}; next up {next_category}")
        return AdvanceResult(category_complete=True, next_category=next_category)

    async def skip_category(self, user_id: str) -> AdvanceResult:
        """Advance without answering. The BIO is left alone."""
        async with self._user_lock(user_id):
            session = await self._load(user_id)
            self._require_discover(session, "skip a category")
            profile = await self.profiles.read(user_id)
            result = self._advance(session, profile)
            await self._save(session)
        return result

    async def complete(self, user_id: str) -> OnboardingSession:
        """Finish onboarding from any step. Completing twice is a no-op."""
        async with self._user_lock(user_id):
            session = await self._load(user_id)
            if session.completed:
                return session
            session.mark_complete()
            session = await self._save(session)
        logger.info(f"{user_id} completed onboarding")
        return session

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_session_state(self, user_id: str) -> OnboardingSession:
        return await self._load(user_id)

    async def get_profile(self, user_id: str) -> PreferenceProfile | None:
        return await self.profiles.read(user_id)
