from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ReturnDocument

from .db import db
from .errors import NotFoundError, ValidationError
from .models import Difficulty, Riddle
from .utils import is_number, new_id, now_ts

logger = logging.getLogger(__name__)

RIDDLE_FIELDS = ("name", "task_description", "correct_answer", "difficulty", "time_limit", "hint", "choices")
TEXT_FIELDS = ("name", "task_description", "hint")
MIN_CHOICES = 2

SEED_RIDDLES: List[Dict[str, Any]] = [
    {
        "name": "Logic Puzzle",
        "task_description": "I speak without a mouth and hear without ears. What am I?",
        "correct_answer": "Echo",
        "difficulty": "medium",
        "time_limit": 25,
        "hint": "You can hear it in a canyon.",
    },
    {
        "name": "Numbers Game",
        "task_description": "What is the next number in the sequence: 2, 4, 8, 16, ?",
        "correct_answer": 32,
        "difficulty": "hard",
        "time_limit": 30,
        "hint": "Each number is double the previous one.",
    },
    {
        "name": "Even Number",
        "task_description": "Which of the following numbers is even?",
        "correct_answer": "8",
        "choices": ["7", "8", "13", "21"],
        "difficulty": "easy",
        "time_limit": 15,
        "hint": "It's the only number divisible by 2.",
    },
    {
        "name": "Square Root",
        "task_description": "What is the square root of 49?",
        "correct_answer": "7",
        "choices": ["6", "7", "8", "9"],
        "difficulty": "hard",
        "time_limit": 20,
        "hint": "It's a single-digit number that when multiplied by itself gives 49.",
    },
]


def parse_difficulty(value: Any) -> Difficulty:
    if isinstance(value, Difficulty):
        return value
    try:
        return Difficulty(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            "Invalid difficulty.", f"Expected one of: {', '.join(d.value for d in Difficulty)}"
        ) from None


def is_difficulty(value: str) -> bool:
    try:
        parse_difficulty(value)
    except ValidationError:
        return False
    return True


def validate_riddle(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Check authoring rules and return the normalised riddle fields.

    Raises :class:`ValidationError` listing every problem found.
    """
    problems: List[str] = []
    clean: Dict[str, Any] = {}

    for key in TEXT_FIELDS:
        value = fields.get(key)
        if not isinstance(value, str) or not value.strip():
            problems.append(f"{key} must not be empty")
        else:
            clean[key] = value

    answer = fields.get("correct_answer")
    if is_number(answer):
        clean["correct_answer"] = answer
    elif isinstance(answer, str) and answer.strip():
        clean["correct_answer"] = answer
    else:
        problems.append("correct_answer must not be empty")

    try:
        clean["difficulty"] = parse_difficulty(fields.get("difficulty")).value
    except ValidationError:
        problems.append("difficulty must be easy, medium or hard")

    time_limit = fields.get("time_limit")
    if not is_number(time_limit) or time_limit <= 0:
        problems.append("time_limit must be a positive number")
    else:
        clean["time_limit"] = float(time_limit)

    choices = fields.get("choices")
    if choices is not None:
        if not isinstance(choices, list) or len(choices) < MIN_CHOICES:
            problems.append(f"multiple choice riddles must have at least {MIN_CHOICES} choices")
        elif any(not isinstance(c, str) or not c.strip() for c in choices):
            problems.append("choices must not be empty")
        elif "correct_answer" in clean and choices.count(str(clean["correct_answer"])) != 1:
            problems.append("correct_answer must match exactly one choice")
        else:
            clean["choices"] = list(choices)
    else:
        clean["choices"] = None

    if problems:
        raise ValidationError("Invalid riddle.", problems)
    return clean


class RiddleCatalog:
    """Riddle definitions, grouped by difficulty."""

    def __init__(self, database: Any = None):
        self.collection = (database if database is not None else db).riddles

    async def _list(self, query: Dict[str, Any]) -> List[Riddle]:
        cursor = self.collection.find(query).sort("created_at", 1)
        return [Riddle(**doc) async for doc in cursor]

    async def get_all(self) -> List[Riddle]:
        return await self._list({})

    async def get_by_difficulty(self, difficulty: Any) -> List[Riddle]:
        return await self._list({"difficulty": parse_difficulty(difficulty).value})

    async def get_unsolved(self, difficulty: Any, solved_ids: Iterable[str]) -> List[Riddle]:
        """Riddles of ``difficulty`` whose id is not among ``solved_ids``."""
        query: Dict[str, Any] = {"difficulty": parse_difficulty(difficulty).value}
        solved = list(set(solved_ids))
        if solved:
            query["id"] = {"$nin": solved}
        return await self._list(query)

    async def get(self, riddle_id: str) -> Riddle:
        doc = await self.collection.find_one({"id": riddle_id})
        if not doc:
            raise NotFoundError(f"Riddle {riddle_id} not found.")
        return Riddle(**doc)

    async def create(self, fields: Dict[str, Any]) -> Riddle:
        clean = validate_riddle(fields)
        doc = {"id": new_id(), "created_at": now_ts(), **clean}
        await self.collection.insert_one(doc)
        logger.info("Created riddle %s (%s)", doc["id"], doc["name"])
        return Riddle(**doc)

    async def update(self, riddle_id: str, fields: Dict[str, Any]) -> Riddle:
        current = await self.get(riddle_id)
        merged = current.model_dump(mode="json", include=set(RIDDLE_FIELDS))
        merged.update({k: v for k, v in fields.items() if k in RIDDLE_FIELDS})
        clean = validate_riddle(merged)

        doc = await self.collection.find_one_and_update(
            {"id": riddle_id},
            {"$set": clean},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundError(f"Riddle {riddle_id} not found.")
        logger.info("Updated riddle %s fields=%s", riddle_id, sorted(fields))
        return Riddle(**doc)

    async def delete(self, riddle_id: str) -> None:
        doc = await self.collection.find_one_and_delete({"id": riddle_id})
        if not doc:
            raise NotFoundError(f"Riddle {riddle_id} not found.")
        logger.info("Deleted riddle %s", riddle_id)

    async def seed(self, riddles: Optional[Iterable[Dict[str, Any]]] = None) -> int:
        """Add the starter riddles that are not in the catalog yet."""
        created = 0
        for fields in SEED_RIDDLES if riddles is None else riddles:
            if await self.collection.find_one({"name": fields["name"]}):
                continue
            await self.create(fields)
            created += 1
        return created


catalog = RiddleCatalog()
