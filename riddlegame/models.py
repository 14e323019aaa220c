from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .utils import now_ts

Answer = Union[int, float, str]


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Role(str, Enum):
    GUEST = "guest"
    USER = "user"
    ADMIN = "admin"


class RiddleKind(str, Enum):
    PLAIN = "plain"
    MULTIPLE_CHOICE = "multiple_choice"


class Riddle(BaseModel):
    id: str
    name: str
    task_description: str
    correct_answer: Answer
    difficulty: Difficulty
    time_limit: float
    hint: str = ""
    choices: Optional[List[str]] = None
    # resolved from ``choices`` whenever a riddle is loaded
    kind: RiddleKind = RiddleKind.PLAIN

    @field_validator("difficulty", mode="before")
    @classmethod
    def _normalise_difficulty(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _resolve_kind(self):
        self.kind = RiddleKind.MULTIPLE_CHOICE if self.choices is not None else RiddleKind.PLAIN
        return self

    @property
    def is_multiple_choice(self) -> bool:
        return self.kind == RiddleKind.MULTIPLE_CHOICE


class Player(BaseModel):
    id: str
    username: str
    role: Role = Role.GUEST
    lowest_time: Optional[float] = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    def record_time(self, final_score: float) -> float:
        """Keep ``final_score`` as the best time if it beats the current one."""
        if self.lowest_time is None or final_score < self.lowest_time:
            self.lowest_time = final_score
        return self.lowest_time

    def can_create_riddles(self) -> bool:
        return self.role in (Role.USER, Role.ADMIN)

    def can_view_all_riddles(self) -> bool:
        return self.role in (Role.USER, Role.ADMIN)

    def can_edit_riddles(self) -> bool:
        return self.role == Role.ADMIN

    def can_delete_riddles(self) -> bool:
        return self.role == Role.ADMIN


class SolvedRecord(BaseModel):
    player_id: str
    riddle_id: str
    time_to_solve: float
    solved_at: float = Field(default_factory=now_ts)
