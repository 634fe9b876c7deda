"""
Mila - LLM Client.

Wraps the async OpenAI client with Instructor for guaranteed structured
outputs. Every LLM call in the app goes through here so prompts are logged
and timeouts are applied in one place.
"""

import logging
from typing import TypeVar

import instructor
from openai import AsyncOpenAI
from pydantic import BaseModel

from mila.config import settings
from mila.llm.prompt_logger import log_prompt

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_client: instructor.AsyncInstructor | None = None
_raw_client: AsyncOpenAI | None = None


def get_raw_client() -> AsyncOpenAI:
    """Plain async OpenAI client, for free-text completions."""
    global _raw_client

    if _raw_client is None:
        _raw_client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.llm_timeout_seconds,
        )

    return _raw_client


def get_client() -> instructor.AsyncInstructor:
    """
    Get the Instructor-wrapped async OpenAI client.

    Uses singleton pattern to reuse the connection pool.
    """
    global _client

    if _client is None:
        _client = instructor.from_openai(get_raw_client())

    return _client


async def call_llm(
    *,
    response_model: type[T],
    system_prompt: str,
    user_prompt: str,
    purpose: str = "llm",
    model: str | None = None,
    temperature: float = 0.7,
    max_retries: int = 2,
) -> T:
    """
    Make a structured LLM call with guaranteed schema compliance.

    Args:
        response_model: Pydantic model class for the response
        system_prompt: System message setting context
        user_prompt: User message with the actual request
        purpose: Label used for prompt logs
        model: Model override (defaults to settings.inference_model)
        temperature: Sampling temperature
        max_retries: Number of re-asks if the response doesn't validate

    Returns:
        Instance of response_model with validated data
    """
    client = get_client()
    model = model or settings.inference_model

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]

    try:
        response = await client.chat.completions.create(
            model=model,
            messages=messages,
            response_model=response_model,
            max_retries=max_retries,
            temperature=temperature,
        )
    except Exception as e:
        log_prompt(
            purpose=purpose,
            model=model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            response_model=response_model.__name__,
            error=str(e),
        )
        raise

    log_prompt(
        purpose=purpose,
        model=model,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        response_model=response_model.__name__,
        response=response,
    )
    return response


async def call_llm_text(
    *,
    system_prompt: str,
    user_prompt: str,
    purpose: str = "llm_text",
    model: str | None = None,
    temperature: float = 0.8,
    max_tokens: int = 150,
) -> str:
    """Free-text completion. Returns an empty string if the model sends nothing."""
    client = get_raw_client()
    model = model or settings.narrator_model

    response = await client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        temperature=temperature,
        max_tokens=max_tokens,
    )
    text = (response.choices[0].message.content or "").strip()

    log_prompt(
        purpose=purpose,
        model=model,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        response_model="str",
        response={"text": text},
    )
    return text
