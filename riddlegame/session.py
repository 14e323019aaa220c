"""Client-side sessions: where tokens are kept and how a username becomes a player.

:class:`SessionAuthenticator` walks the login state machine against an
authentication gateway::

    start -> check_user
      authenticated (valid token, or a guest needing none) -> AUTHENTICATED
      token expired and user exists -> password -> login -> AUTHENTICATED | FAILED
      user exists                   -> password -> login -> AUTHENTICATED | FAILED
      unknown user -> menu
          1 guest quick-play                    -> AUTHENTICATED
          2 password + confirmation -> signup   -> AUTHENTICATED | FAILED
          anything else                         -> FAILED

A failure is an outcome, not an exception. Whether the caller then asks for
another username or gives up is its :class:`FailurePolicy`.
"""
from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from pydantic import BaseModel

from .console import Console
from .errors import RiddleGameError, ValidationError
from .models import Player
from .players import username_key
from .schemas import AuthOut, CheckUserOut
from .utils import format_seconds

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def get(self, username: str) -> Optional[str]: ...

    def set(self, username: str, token: str, expires_at: float) -> None: ...

    def clear(self, username: str) -> None: ...

    def is_valid(self, username: str, now: float) -> bool: ...


class MemorySessionStore:
    def __init__(self):
        self._tokens: Dict[str, Dict[str, Any]] = {}

    def get(self, username: str) -> Optional[str]:
        entry = self._tokens.get(username_key(username))
        return entry["token"] if entry else None

    def set(self, username: str, token: str, expires_at: float) -> None:
        self._tokens[username_key(username)] = {"token": token, "expires_at": expires_at}

    def clear(self, username: str) -> None:
        self._tokens.pop(username_key(username), None)

    def is_valid(self, username: str, now: float) -> bool:
        entry = self._tokens.get(username_key(username))
        return bool(entry) and entry["expires_at"] > now


class FileSessionStore(MemorySessionStore):
    """Tokens kept in a JSON file so a login survives restarting the client."""

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            try:
                self._tokens = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Could not load saved tokens from %s: %s", self.path, exc)

    def _save(self) -> None:
        try:
            self.path.write_text(json.dumps(self._tokens, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not save tokens to %s: %s", self.path, exc)

    def set(self, username: str, token: str, expires_at: float) -> None:
        super().set(username, token, expires_at)
        self._save()

    def clear(self, username: str) -> None:
        super().clear(username)
        self._save()


class AuthGateway(Protocol):
    async def check_user(self, username: str) -> CheckUserOut: ...

    async def login(self, username: str, password: str) -> AuthOut: ...

    async def signup(self, username: str, password: str, role: str = "user") -> AuthOut: ...

    async def guest(self, username: str) -> Player: ...

    async def logout(self, username: str) -> None: ...


class AuthState(str, Enum):
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class AuthPath(str, Enum):
    TOKEN = "token"
    GUEST = "guest"
    RELOGIN = "relogin"
    LOGIN = "login"
    GUEST_CREATE = "guest_create"
    SIGNUP = "signup"


class FailurePolicy(str, Enum):
    RETRY = "retry"
    ABORT = "abort"

    @classmethod
    def parse(cls, value: Any) -> "FailurePolicy":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown auth failure policy: {value!r}") from None


class AuthOutcome(BaseModel):
    state: AuthState
    player: Optional[Player] = None
    path: Optional[AuthPath] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == AuthState.AUTHENTICATED


def _failed(reason: str, path: Optional[AuthPath] = None) -> AuthOutcome:
    return AuthOutcome(state=AuthState.FAILED, path=path, reason=reason)


def _authenticated(player: Player, path: AuthPath) -> AuthOutcome:
    return AuthOutcome(state=AuthState.AUTHENTICATED, player=player, path=path)


class SessionAuthenticator:
    def __init__(
        self,
        gateway: AuthGateway,
        store: SessionStore,
        console: Console,
    ):
        self.gateway = gateway
        self.store = store
        self.console = console

    async def authenticate(self, username: str) -> AuthOutcome:
        try:
            return await self._start(username)
        except RiddleGameError as exc:
            self.console.say(f"Authentication error: {exc}")
            if exc.details:
                self.console.say(f"Details: {exc.details}")
            return _failed(str(exc))

    async def _start(self, username: str) -> AuthOutcome:
        check = await self.gateway.check_user(username)

        if check.authenticated and check.user:
            user = check.user
            if check.guest_login:
                self.console.say(f"Welcome back, {user.username}! Logging in as guest.")
                self.console.say("Role: guest (limited features)")
                return _authenticated(user, AuthPath.GUEST)
            self.console.say(f"Welcome back, {user.username}! You're already logged in.")
            self.console.say(f"Role: {user.role.value}")
            return _authenticated(user, AuthPath.TOKEN)

        if check.token_error and not check.token_expired:
            # the server no longer accepts the stored token
            self.store.clear(username)

        if check.token_expired:
            self.console.say("Your session has expired. Please log in again.")
            if check.user_exists:
                return await self._login(username, AuthPath.RELOGIN)

        if check.user_exists:
            return await self._login(username, AuthPath.LOGIN)

        return await self._new_user(username)

    async def _login(self, username: str, path: AuthPath) -> AuthOutcome:
        password = self.console.ask("Enter your password:", secret=True)
        try:
            result = await self.gateway.login(username, password)
        except RiddleGameError as exc:
            self.console.say(f"Login failed: {exc}")
            return _failed(str(exc), path)

        self.store.set(result.user.username, result.token, result.expires_at)
        suffix = " Session renewed." if path == AuthPath.RELOGIN else ""
        self.console.say(f"Welcome back, {result.user.username}!{suffix}")
        self.console.say(f"Role: {result.user.role.value}")
        return _authenticated(result.user, path)

    async def _new_user(self, username: str) -> AuthOutcome:
        self.console.say()
        self.console.say(f"User '{username}' not found. How would you like to proceed?")
        self.console.say("1. Play as guest (username only, limited features)")
        self.console.say("2. Create account (username + password, full features)")
        choice = self.console.ask("Choose option (1 or 2):").strip()

        if choice == "1":
            return await self._guest(username)
        if choice == "2":
            return await self._signup(username)
        self.console.say("Invalid choice.")
        return _failed("Invalid choice.")

    async def _guest(self, username: str) -> AuthOutcome:
        player = await self.gateway.guest(username)
        if player.lowest_time is not None:
            self.console.say(
                f"Hi {player.username}! Your previous lowest time was {format_seconds(player.lowest_time)} seconds."
            )
        else:
            self.console.say(f"Hi {player.username}! Welcome to your first game!")
        self.console.say("Playing as guest you have limited features.")
        return _authenticated(player, AuthPath.GUEST_CREATE)

    async def _signup(self, username: str) -> AuthOutcome:
        password = self.console.ask("Enter a password:", secret=True)
        confirm = self.console.ask("Confirm password:", secret=True)
        if password != confirm:
            self.console.say("Passwords do not match.")
            return _failed("Passwords do not match.", AuthPath.SIGNUP)

        try:
            result = await self.gateway.signup(username, password, "user")
        except RiddleGameError as exc:
            self.console.say(f"Signup failed: {exc}")
            return _failed(str(exc), AuthPath.SIGNUP)

        self.store.set(result.user.username, result.token, result.expires_at)
        self.console.say(f"Account created successfully! Welcome, {result.user.username}!")
        self.console.say("Role: user (full features)")
        return _authenticated(result.user, AuthPath.SIGNUP)
