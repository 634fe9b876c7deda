"""
Onboarding error taxonomy.

Every error carries enough context (user, category, step) for the caller to
decide between retrying and resetting the session. `retriable` tells the
HTTP layer and the CLI whether repeating the same request can succeed.
"""


class OnboardingError(Exception):
    """Base class for all onboarding failures."""

    retriable: bool = False

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        category: str | None = None,
        step: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.category = category
        self.step = step

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": type(self).__name__,
            "retriable": self.retriable,
            "category": self.category,
            "step": self.step,
        }


class SessionNotFound(OnboardingError):
    """No session exists for the user; the caller must initialize one."""


class ProfileNotInitialized(OnboardingError):
    """An answer arrived before categories were selected (no BIO yet)."""


class InvalidTransition(OnboardingError):
    """The operation is not valid in the session's current step."""


class InvalidAnswer(OnboardingError):
    """Malformed request: bad slider value, unknown place, unknown category."""


class InferenceFailure(OnboardingError):
    """The inference service failed or returned unusable output. Profile untouched."""

    retriable = True


class ProviderTransportError(OnboardingError):
    """Place search failed on every attempt of a fetch."""

    retriable = True


class SessionConflict(OnboardingError):
    """Another request for the same user saved the session first."""

    retriable = True


class ProfileVersionConflict(OnboardingError):
    """Another writer appended a BIO version first."""

    retriable = True


class InsufficientCandidates(OnboardingError):
    """
    Fewer candidates than requested after all retries.

    Not raised by the candidate source: it is returned as a signal alongside
    the partial batch so the UI can show what it has and offer manual entry.
    """

    def __init__(
        self,
        message: str,
        *,
        required: int,
        found: int,
        **context,
    ):
        super().__init__(message, **context)
        self.required = required
        self.found = found
