from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from .db import settings
from .errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TransportError,
    ValidationError,
)
from .models import Player, Riddle, SolvedRecord
from .schemas import AuthOut, CheckUserOut, LeaderboardEntry, RecordTimeOut
from .session import SessionStore

logger = logging.getLogger(__name__)

_STATUS_ERRORS = {
    400: ValidationError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


class RemoteGateway:
    """Talks to the game API over HTTP.

    ``requests`` is blocking, so every call runs in a worker thread. Calls made
    on behalf of a username send that username's stored token, expired or not,
    and let the server decide.
    """

    def __init__(
        self,
        store: SessionStore,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.store = store
        self.base_url = (base_url or settings.API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SEC
        self.http = http or requests.Session()

    def _headers(self, username: Optional[str]) -> Dict[str, str]:
        token = self.store.get(username) if username else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        return self.http.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)

    async def _call(
        self,
        action: str,
        method: str,
        path: str,
        *,
        username: Optional[str] = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await asyncio.to_thread(
                self._send, method, path, json=json, params=params, headers=self._headers(username)
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransportError(action, str(exc)) from exc

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = None

        if response.status_code < 400:
            return data

        detail = data.get("detail") if isinstance(data, dict) else None
        logger.warning("%s %s -> %s %s", method, path, response.status_code, detail)
        error_cls = _STATUS_ERRORS.get(response.status_code)
        if error_cls is None:
            raise TransportError(action, detail or response.text, status_code=response.status_code)
        if isinstance(detail, str):
            raise error_cls(detail, data.get("details"))
        # request schema errors come back as a list of field problems
        raise error_cls(f"Failed to {action}.", detail)

    async def check_user(self, username: str) -> CheckUserOut:
        data = await self._call(
            "check user", "POST", "/players/check-user", username=username, json={"username": username}
        )
        return CheckUserOut(**data)

    async def login(self, username: str, password: str) -> AuthOut:
        data = await self._call("log in", "POST", "/players/login", json={"username": username, "password": password})
        return AuthOut(**data)

    async def signup(self, username: str, password: str, role: str = "user") -> AuthOut:
        data = await self._call(
            "sign up",
            "POST",
            "/players/signup",
            json={"username": username, "password": password, "role": role},
        )
        return AuthOut(**data)

    async def guest(self, username: str) -> Player:
        data = await self._call("start guest session", "POST", "/players/guest", json={"username": username})
        return Player(**data)

    async def logout(self, username: str) -> None:
        """End the session on the server; the local token is dropped either way."""
        try:
            await self._call("log out", "POST", "/players/logout", username=username)
        except AuthenticationError:
            # the server already considers this session gone
            logger.info("Logout for %s with a token the server no longer accepts", username)
        finally:
            self.store.clear(username)

    async def leaderboard(self, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        params = {"limit": limit} if limit else None
        data = await self._call("fetch leaderboard", "GET", "/players/leaderboard", params=params)
        return [LeaderboardEntry(**row) for row in data]

    async def record_time(self, player_id: str, time: float) -> RecordTimeOut:
        data = await self._call("update player time", "PUT", f"/players/{player_id}/time", json={"time": time})
        return RecordTimeOut(**data)

    async def record_solved(self, player_id: str, riddle_id: str, time_to_solve: float) -> SolvedRecord:
        data = await self._call(
            "record solved riddle",
            "POST",
            f"/players/{player_id}/solved",
            json={"riddle_id": riddle_id, "time_to_solve": time_to_solve},
        )
        return SolvedRecord(**data)

    async def riddles_for(self, player_id: str, difficulty: str, unsolved: bool = True) -> List[Riddle]:
        data = await self._call(
            "fetch riddles",
            "GET",
            f"/players/{player_id}/riddles",
            params={"difficulty": difficulty, "unsolved": "true" if unsolved else "false"},
        )
        return [Riddle(**doc) for doc in data]

    async def list_riddles(self, username: str, difficulty: Optional[str] = None) -> List[Riddle]:
        params = {"difficulty": difficulty} if difficulty else None
        data = await self._call("fetch riddles", "GET", "/riddles", username=username, params=params)
        return [Riddle(**doc) for doc in data]

    async def create_riddle(self, username: str, fields: Dict[str, Any]) -> Riddle:
        data = await self._call("create riddle", "POST", "/riddles", username=username, json=fields)
        return Riddle(**data)

    async def update_riddle(self, username: str, riddle_id: str, fields: Dict[str, Any]) -> Riddle:
        data = await self._call("update riddle", "PUT", f"/riddles/{riddle_id}", username=username, json=fields)
        return Riddle(**data)

    async def delete_riddle(self, username: str, riddle_id: str) -> None:
        await self._call("delete riddle", "DELETE", f"/riddles/{riddle_id}", username=username)
