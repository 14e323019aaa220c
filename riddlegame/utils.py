import math
import time
import uuid
from typing import Any, Optional, Union


def now_ts() -> float:
    return time.time()


def new_id() -> str:
    return uuid.uuid4().hex


def to_number(value: Any) -> Optional[float]:
    """Numeric value of ``value`` or ``None`` when it is blank or not a number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return None if math.isnan(number) else number


def is_number(value: Any) -> bool:
    """True for finite ints and floats. Booleans, NaN and infinities are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def sort_leaderboard(players: list[dict]) -> list[dict]:
    ranked = [p for p in players if is_number(p.get("lowest_time"))]
    return sorted(ranked, key=lambda p: (p["lowest_time"], p["username"].lower(), str(p.get("id", ""))))


def format_seconds(value: Union[int, float]) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")
