"""
Question messages.

A message shown with a question comes from, in order:
1. the caller or the inference step (a provided message always wins)
2. a uniform draw from the template pool for (message type, category)
3. the pool for (message type, any category)
4. a fixed default

Templates use {category} and {city} placeholders. Selection is a pure
function of its inputs and the random source, so seed the Random in tests.
"""

import random
from typing import Mapping, Sequence

from mila.places.categories import category_label

from .state import QuestionType

DEFAULT_MESSAGE = "What do you think about these places?"
DEFAULT_CITY = "your area"

# Questions past this number get a "nearly done" nudge
NEARING_COMPLETION_AFTER = 7


class MessageType:
    WELCOME = "welcome"
    QUESTION_INTRO = "question_intro"
    CONTINUE_EXPLORING = "continue_exploring"
    STYLE_CONTRAST = "style_contrast"
    COMPARISON_INTRO = "comparison_intro"
    NEARING_COMPLETION = "nearing_completion"
    COMPLETION = "completion"
    TRANSITION = "transition"


# (message type, category or None for any) -> templates
MessagePool = Mapping[tuple[str, str | None], Sequence[str]]

DEFAULT_MESSAGES: dict[tuple[str, str | None], list[str]] = {
    (MessageType.WELCOME, None): [
        "What kinds of places do you love to discover?",
        "Help us understand your taste - pick any categories that interest you",
        "Which experiences matter most to you when exploring a new city?",
    ],
    (MessageType.QUESTION_INTRO, None): [
        "Which of these {category} spots in {city} catch your eye?",
        "Here are some {category} options in {city} - pick any that appeal to you",
        "Take a look at these {category} places - what stands out to you?",
        "Check out these {category} options - select any you like",
    ],
    (MessageType.CONTINUE_EXPLORING, None): [
        "Let's keep going - here are some more {category} options",
        "How about these {category} places?",
        "Here's another set of {category} options to consider",
        "Take a look at these {category} spots",
        "Here are a few more {category} places",
    ],
    (MessageType.STYLE_CONTRAST, None): [
        "Here are some different vibes - which appeals to you more?",
        "Take a look at these contrasting options",
        "Here's a mix of styles - what catches your attention?",
        "These have different feels - which ones do you like?",
        "Trying something different - what appeals to you here?",
    ],
    (MessageType.COMPARISON_INTRO, None): [
        "Between these two, which do you prefer?",
        "Compare these two {category} places",
        "Which of these two is more your style?",
        "Take a look at both - which would you choose?",
        "Between A and B, which one appeals to you more?",
    ],
    (MessageType.NEARING_COMPLETION, None): [
        "Just a few more questions",
        "Almost done with {category}",
        "A couple more to go",
        "Nearly there - just a bit more",
    ],
    (MessageType.COMPLETION, None): [
        "All set with {category}! Ready for the next one?",
        "Great! Moving on to the next category",
        "{category} complete - let's continue",
        "Done with {category} - ready for more?",
    ],
    (MessageType.TRANSITION, None): [
        "Let's explore {category} next",
        "Moving on to {category}",
        "Now for {category} places",
        "Next up: {category}",
    ],
}


def fill_template(template: str, category: str | None, city: str | None) -> str:
    text = template.replace("{category}", category_label(category) if category else "")
    return text.replace("{city}", city or DEFAULT_CITY)


class MessageSelector:
    def __init__(self, pool: MessagePool | None = None, rng: random.Random | None = None):
        self.pool = DEFAULT_MESSAGES if pool is None else pool
        self.rng = rng or random.Random()

    def templates(self, message_type: str, category: str | None) -> Sequence[str]:
        return self.pool.get((message_type, category)) or self.pool.get((message_type, None)) or []

    def select(
        self,
        message_type: str,
        category: str | None = None,
        city: str | None = None,
        provided: str | None = None,
    ) -> str:
        if provided:
            return provided

        templates = self.templates(message_type, category)
        if not templates:
            return DEFAULT_MESSAGE
        return fill_template(self.rng.choice(templates), category, city)


def choose_message_type(
    question_number: int,
    question_type: QuestionType,
    used_queries: bool,
    rng: random.Random,
) -> str:
    """Which kind of message suits this question."""
    if question_number == 1:
        return MessageType.QUESTION_INTRO
    if not used_queries:
        return MessageType.CONTINUE_EXPLORING
    if question_number > NEARING_COMPLETION_AFTER:
        return MessageType.NEARING_COMPLETION
    if question_type == QuestionType.AB_COMPARISON:
        return MessageType.COMPARISON_INTRO
    return rng.choice([MessageType.CONTINUE_EXPLORING, MessageType.STYLE_CONTRAST])
