
from pydantic import BaseModel, FiniteFloat
from typing import List, Optional
from .models import Answer, Player


class RiddleIn(BaseModel):
    name: str
    task_description: str
    correct_answer: Answer
    difficulty: str
    time_limit: FiniteFloat
    hint: str
    choices: Optional[List[str]] = None


class RiddleUpdateIn(BaseModel):
    name: Optional[str] = None
    task_description: Optional[str] = None
    correct_answer: Optional[Answer] = None
    difficulty: Optional[str] = None
    time_limit: Optional[FiniteFloat] = None
    hint: Optional[str] = None
    choices: Optional[List[str]] = None


class CheckUserIn(BaseModel):
    username: str


class CheckUserOut(BaseModel):
    user_exists: bool
    authenticated: bool
    token_expired: bool = False
    token_error: Optional[str] = None
    guest_login: bool = False
    user: Optional[Player] = None
    message: str = ""


class CredentialsIn(BaseModel):
    username: str
    password: str


class SignupIn(CredentialsIn):
    role: str = "user"


class GuestIn(BaseModel):
    username: str


class AuthOut(BaseModel):
    user: Player
    token: str
    expires_at: float


class RecordTimeIn(BaseModel):
    time: FiniteFloat


class RecordTimeOut(BaseModel):
    lowest_time: Optional[float]
    improved: bool


class SolvedIn(BaseModel):
    riddle_id: str
    time_to_solve: FiniteFloat


class LeaderboardEntry(BaseModel):
    username: str
    lowest_time: float
