"""Turn the timing of one answered riddle into a recorded score.

Lower is better. The penalties are fixed:

- answering after the riddle's time limit adds ``TIME_PENALTY_SEC``
- revealing the hint at any point adds ``HINT_PENALTY_SEC``

Both may apply to the same attempt. Nothing here is stateful, so the same
inputs always give the same score.
"""
from __future__ import annotations

from pydantic import BaseModel

TIME_PENALTY_SEC = 5
HINT_PENALTY_SEC = 10


class Attempt(BaseModel):
    elapsed: float
    penalty: float
    final_score: float
    over_time: bool
    used_hint: bool


def elapsed_seconds(start: float, end: float) -> float:
    return end - start


def compute_penalty(time_limit: float, elapsed: float, used_hint: bool) -> float:
    penalty = 0
    if elapsed > time_limit:
        penalty += TIME_PENALTY_SEC
    if used_hint:
        penalty += HINT_PENALTY_SEC
    return penalty


def final_score(elapsed: float, penalty: float) -> float:
    return max(0.0, elapsed + penalty)


def score_attempt(time_limit: float, start: float, end: float, used_hint: bool) -> Attempt:
    elapsed = elapsed_seconds(start, end)
    penalty = compute_penalty(time_limit, elapsed, used_hint)
    return Attempt(
        elapsed=elapsed,
        penalty=penalty,
        final_score=final_score(elapsed, penalty),
        over_time=elapsed > time_limit,
        used_hint=used_hint,
    )
