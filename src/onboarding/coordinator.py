"""
Preference Update Coordinator.

One answered question in, one new BIO version out:

1. read the latest profile (ProfileNotInitialized if there is none)
2. ask the inference service for the category's new state
3. replace the category's fields with the result
4. regenerate the bio text
5. append the new version, conditional on the version we read

Any inference failure (exception, timeout, invalid output) becomes
InferenceFailure before anything is written, so a failed update never leaves
a partial version behind.
"""

import logging
from dataclasses import dataclass

from .bio_store import ProfileStore
from .errors import InferenceFailure, ProfileNotInitialized
from .evidence import Evidence
from .inference import BioNarrator, InferenceRequest, InferenceResult, PreferenceInferenceService
from .profile import MATERIALITY_THRESHOLD, PLACEHOLDER_BIO, PreferenceProfile, compose_bio_text
from .state import OnboardingStep, QuestionStrategy

logger = logging.getLogger(__name__)


@dataclass
class PreferenceUpdate:
    profile: PreferenceProfile
    confidence_score: float
    next_strategy: QuestionStrategy | None


class PreferenceUpdateCoordinator:
    def __init__(
        self,
        profile_store: ProfileStore,
        inference: PreferenceInferenceService,
        narrator: BioNarrator | None = None,
        materiality_threshold: float = MATERIALITY_THRESHOLD,
    ):
        self.profile_store = profile_store
        self.inference = inference
        self.narrator = narrator
        self.materiality_threshold = materiality_threshold

    async def update(self, user_id: str, category: str, evidence: Evidence) -> PreferenceUpdate:
        """
        Fold one answer into the user's BIO.

        Raises:
            ProfileNotInitialized: no BIO exists yet
            InferenceFailure: the inference call failed; nothing was written
            ProfileVersionConflict: another writer appended a version first
        """
        current = await self.profile_store.read(user_id)
        if current is None:
            raise ProfileNotInitialized(
                f"No BIO for {user_id}; select categories first",
                user_id=user_id,
                category=category,
                step=OnboardingStep.DISCOVER.value,
            )

        request = InferenceRequest(
            category=category,
            current=current.category(category),
            evidence=evidence,
        )
        result = await self._infer(user_id, request)

        updated = current.model_copy(deep=True)
        updated.categories[category] = result.to_preference()
        updated.bio_text = await self._bio_text(updated)

        saved = await self.profile_store.write(user_id, updated, expected_version=current.version)
        logger.info(
            f"BIO v{saved.version} for {user_id}: {category} confidence "
            f"{current.category(category).confidence_score:.2f} -> {result.confidence_score:.2f}"
        )

        return PreferenceUpdate(
            profile=saved,
            confidence_score=result.confidence_score,
            next_strategy=result.to_strategy(),
        )

    async def _infer(self, user_id: str, request: InferenceRequest) -> InferenceResult:
        try:
            result = await self.inference.infer(request)
            return InferenceResult.model_validate(result, from_attributes=True)
        except Exception as e:
            logger.warning(f"Inference failed for {user_id}/{request.category}: {e}")
            raise InferenceFailure(
                f"Could not update preferences for {request.category}: {e}",
                user_id=user_id,
                category=request.category,
                step=OnboardingStep.DISCOVER.value,
            ) from e

    async def _bio_text(self, profile: PreferenceProfile) -> str:
        digest = compose_bio_text(profile, self.materiality_threshold)
        if self.narrator is None or digest == PLACEHOLDER_BIO:
            return digest

        try:
            text = await self.narrator.narrate(digest)
        except Exception as e:
            logger.warning(f"Bio narration failed, keeping digest: {e}")
            return digest
        return text or digest
