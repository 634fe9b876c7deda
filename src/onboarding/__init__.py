"""
Mila Onboarding - adaptive place-preference interview.

Learns a user's taste per place category by showing venues, recording
choices and folding them into a versioned preference profile (the BIO).

Steps:
1. Location - residential place the searches are centred on
2. Categories - which place categories to be interviewed about
3. Discover - question/answer cycles per category until confident
4. Complete

Main entry point is OnboardingService (machine.py).
"""

from .errors import OnboardingError
from .machine import OnboardingService
from .profile import PreferenceProfile
from .state import OnboardingSession, OnboardingStep, QuestionType

__all__ = [
    "OnboardingError",
    "OnboardingService",
    "OnboardingSession",
    "OnboardingStep",
    "PreferenceProfile",
    "QuestionType",
]
