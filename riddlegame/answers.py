from __future__ import annotations

import logging
from typing import Optional

from .console import Console
from .models import Riddle, RiddleKind
from .utils import is_number, to_number

logger = logging.getLogger(__name__)

HINT_TOKEN = "hint"
CORRECT_MESSAGE = "Correct!!"
WRONG_MESSAGE = "Wrong answer, try again!"


def is_hint_request(raw: str) -> bool:
    return raw.strip().lower() == HINT_TOKEN


def validate_free_text(riddle: Riddle, raw: str) -> bool:
    expected = riddle.correct_answer
    if is_number(expected):
        return to_number(raw) == float(expected)
    return raw.strip().lower() == str(expected).strip().lower()


def correct_choice_index(riddle: Riddle) -> Optional[int]:
    """1-based position of the correct answer among the choices, if present."""
    for position, choice in enumerate(riddle.choices or [], start=1):
        if choice == riddle.correct_answer or choice == str(riddle.correct_answer):
            return position
    return None


def validate_choice(riddle: Riddle, raw: str) -> bool:
    index = correct_choice_index(riddle)
    if index is None:
        return False
    return to_number(raw) == index


_VALIDATORS = {
    RiddleKind.PLAIN: validate_free_text,
    RiddleKind.MULTIPLE_CHOICE: validate_choice,
}


def check_answer(riddle: Riddle, raw: str) -> bool:
    return _VALIDATORS[riddle.kind](riddle, raw)


def present(riddle: Riddle, console: Console) -> None:
    console.say("Riddle:")
    console.say(f"Name: {riddle.name}")
    console.say(f"Task description: {riddle.task_description}")
    console.say(f"Time limit: {riddle.time_limit:g}")
    console.say()
    if riddle.is_multiple_choice:
        for position, choice in enumerate(riddle.choices or [], start=1):
            console.say(f"{position}. {choice}")


def ask(riddle: Riddle, console: Console) -> bool:
    """Run the question loop for ``riddle`` until it is answered correctly.

    Returns whether the hint was revealed along the way. The loop has no
    attempt limit and no timeout; timing is the caller's job.
    """
    present(riddle, console)
    if riddle.is_multiple_choice:
        if correct_choice_index(riddle) is None:
            logger.warning("Riddle %s has no choice matching its answer and cannot be solved", riddle.id)
        question = f'Select your answer (1-{len(riddle.choices or [])})! (type "{HINT_TOKEN}" to get a hint!):'
    else:
        question = f'What is your answer? (type "{HINT_TOKEN}" to get a hint!):'

    used_hint = False
    while True:
        raw = console.ask(question)
        if is_hint_request(raw):
            console.say(riddle.hint)
            console.say()
            used_hint = True
            continue

        if check_answer(riddle, raw):
            console.say(CORRECT_MESSAGE)
            console.say()
            return used_hint

        console.say(WRONG_MESSAGE)
        console.say()
