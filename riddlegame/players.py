from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument

from .db import db
from .errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from .models import Player, Role, SolvedRecord
from .utils import is_number, new_id, now_ts, sort_leaderboard

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("username", "role")


def username_key(username: str) -> str:
    return username.strip().lower()


def validate_username(username: Any) -> str:
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("Invalid player name.")
    return username.strip()


def parse_role(value: Any) -> Role:
    try:
        return value if isinstance(value, Role) else Role(str(value).strip().lower())
    except ValueError:
        raise ValidationError("Invalid role specified.", f"Expected one of: {', '.join(r.value for r in Role)}") from None


class PlayerStore:
    """Players, their best times and the riddles they have solved."""

    def __init__(self, database: Any = None):
        database = database if database is not None else db
        self.players = database.players
        self.solved = database.solved

    async def find_document(self, username: str) -> Optional[Dict[str, Any]]:
        """Raw stored player, password hash included. Lookup ignores case."""
        return await self.players.find_one({"username_key": username_key(username)})

    async def get_by_username(self, username: str) -> Optional[Player]:
        doc = await self.find_document(username)
        return Player(**doc) if doc else None

    async def get_by_id(self, player_id: str) -> Player:
        doc = await self.players.find_one({"id": player_id})
        if not doc:
            raise NotFoundError(f"Player {player_id} not found.")
        return Player(**doc)

    async def create(self, username: str, role: Any = Role.USER, password_hash: Optional[str] = None) -> Player:
        username = validate_username(username)
        role = parse_role(role)
        if await self.find_document(username):
            raise ConflictError(f"Username '{username}' already exists.")

        doc = {
            "id": new_id(),
            "username": username,
            "username_key": username_key(username),
            "role": role.value,
            "lowest_time": None,
            "password_hash": password_hash,
            "created_at": now_ts(),
        }
        await self.players.insert_one(doc)
        logger.info("Created %s player %s", role.value, username)
        return Player(**doc)

    async def get_or_create_guest(self, username: str) -> Player:
        username = validate_username(username)
        existing = await self.get_by_username(username)
        if existing is None:
            return await self.create(username, Role.GUEST)
        if existing.role != Role.GUEST:
            raise AuthenticationError(f"'{existing.username}' is a registered account, log in with its password.")
        return existing

    async def update(self, player_id: str, fields: Dict[str, Any]) -> Player:
        changes: Dict[str, Any] = {}
        if "username" in fields:
            username = validate_username(fields["username"])
            other = await self.find_document(username)
            if other and other["id"] != player_id:
                raise ConflictError(f"Username '{username}' already exists.")
            changes["username"] = username
            changes["username_key"] = username_key(username)
        if "role" in fields:
            changes["role"] = parse_role(fields["role"]).value
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError("Unknown player fields.", sorted(unknown))

        doc = await self.players.find_one_and_update(
            {"id": player_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundError(f"Player {player_id} not found.")
        return Player(**doc)

    async def record_time(self, player_id: str, time: float) -> Tuple[Player, bool]:
        """Store ``time`` as the player's best if it is strictly lower.

        Each step is a single conditional write, so two clients racing to
        record a time can never overwrite a better one.
        """
        if not is_number(time) or time < 0:
            raise ValidationError("Time must be a finite, non-negative number.")

        update = {"$set": {"lowest_time": time}}
        doc = await self.players.find_one_and_update(
            {"id": player_id, "lowest_time": None}, update, return_document=ReturnDocument.AFTER
        )
        if doc is None:
            doc = await self.players.find_one_and_update(
                {"id": player_id, "lowest_time": {"$gt": time}}, update, return_document=ReturnDocument.AFTER
            )

        improved = doc is not None
        if doc is None:
            doc = await self.players.find_one({"id": player_id})
            if not doc:
                raise NotFoundError(f"Player {player_id} not found.")
        else:
            logger.info("New best time for %s: %s", doc["username"], time)
        return Player(**doc), improved

    async def record_solved(self, player_id: str, riddle_id: str, time_to_solve: float) -> SolvedRecord:
        if not is_number(time_to_solve) or time_to_solve < 0:
            raise ValidationError("Time must be a finite, non-negative number.")
        await self.get_by_id(player_id)
        record = SolvedRecord(player_id=player_id, riddle_id=riddle_id, time_to_solve=time_to_solve)
        await self.solved.insert_one(record.model_dump())
        return record

    async def get_solved_riddle_ids(self, player_id: str) -> List[str]:
        ids: List[str] = []
        async for doc in self.solved.find({"player_id": player_id}):
            if doc["riddle_id"] not in ids:
                ids.append(doc["riddle_id"])
        return ids

    async def leaderboard(self, limit: Optional[int] = None) -> List[Player]:
        docs = [doc async for doc in self.players.find({})]
        ranked = sort_leaderboard(docs)
        if limit is not None:
            if limit < 1:
                raise ValidationError("Limit must be a positive number.")
            ranked = ranked[:limit]
        return [Player(**doc) for doc in ranked]


player_store = PlayerStore()
