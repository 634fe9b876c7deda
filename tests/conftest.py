"""
Pytest configuration and fixtures for Mila tests.
"""

import os
import random
from unittest.mock import MagicMock

import pytest

# Set test environment before importing mila modules
os.environ["MILA_ENV"] = "development"
os.environ["MILA_LOG_PROMPTS"] = "0"
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("GOOGLE_PLACES_API_KEY", "test-key")

from fakes import HOME, CyclingProvider, FakeInference, no_sleep  # noqa: E402
from onboarding.candidates import CandidateSource  # noqa: E402
from onboarding.machine import OnboardingService  # noqa: E402
from onboarding.store import InMemoryOnboardingStore  # noqa: E402


@pytest.fixture
def mock_supabase():
    """Mock Supabase client for unit tests."""
    mock_client = MagicMock()

    mock_table = MagicMock()
    mock_table.select.return_value = mock_table
    mock_table.insert.return_value = mock_table
    mock_table.update.return_value = mock_table
    mock_table.upsert.return_value = mock_table
    mock_table.eq.return_value = mock_table
    mock_table.order.return_value = mock_table
    mock_table.limit.return_value = mock_table
    mock_table.execute.return_value = MagicMock(data=[])

    mock_client.table.return_value = mock_table

    return mock_client


@pytest.fixture
def store():
    return InMemoryOnboardingStore()


@pytest.fixture
def provider():
    return CyclingProvider()


@pytest.fixture
def inference():
    return FakeInference()


@pytest.fixture
def make_service(store, provider, inference):
    """Factory for an OnboardingService over in-memory fakes, location already set."""

    def _make(provider=provider, inference=inference, store=store, with_location=True, **kwargs):
        if with_location:
            store.locations[HOME.user_id] = HOME
        return OnboardingService(
            store,
            provider,
            inference,
            candidates=CandidateSource(provider, sleep=no_sleep),
            rng=random.Random(7),
            **kwargs,
        )

    return _make
