from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from .db import db, settings
from .errors import AuthenticationError, ValidationError
from .models import Player, Role
from .players import PlayerStore, parse_role, player_store, username_key
from .schemas import AuthOut, CheckUserOut
from .utils import new_id, now_ts

logger = logging.getLogger(__name__)

TOKEN_SALT = "riddlegame.auth"


class TokenSigner:
    """Issue and verify signed, time-limited session tokens."""

    def __init__(self, secret_key: str, max_age: int):
        self._serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self.max_age = max_age

    def issue(self, player: Player) -> Tuple[str, float]:
        # the nonce keeps two logins within the same second from sharing a token
        token = self._serializer.dumps(
            {"id": player.id, "username": player.username, "role": player.role.value, "nonce": new_id()}
        )
        return token, now_ts() + self.max_age

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            payload = self._serializer.loads(token, max_age=self.max_age)
        except SignatureExpired:
            raise AuthenticationError("Token has expired", expired=True) from None
        except BadSignature:
            raise AuthenticationError("Invalid token") from None
        if not isinstance(payload, dict) or not payload.get("id") or not payload.get("username"):
            raise AuthenticationError("Invalid token")
        return payload


class AuthService:
    """Server side of authentication: who a username is and whether its token holds."""

    def __init__(
        self,
        players: Optional[PlayerStore] = None,
        database: Any = None,
        signer: Optional[TokenSigner] = None,
    ):
        self.players = players or player_store
        self.sessions = (database if database is not None else db).sessions
        self.signer = signer or TokenSigner(settings.SECRET_KEY, settings.TOKEN_MAX_AGE_SEC)

    async def _open_session(self, player: Player) -> AuthOut:
        token, expires_at = self.signer.issue(player)
        # one active token per username; a new login replaces the previous one
        await self.sessions.update_one(
            {"username_key": username_key(player.username)},
            {"$set": {"token": token, "player_id": player.id, "expires_at": expires_at}},
            upsert=True,
        )
        return AuthOut(user=player, token=token, expires_at=expires_at)

    async def authenticate_token(self, token: str) -> Player:
        payload = self.signer.verify(token)
        active = await self.sessions.find_one({"username_key": username_key(payload["username"])})
        if not active or active.get("token") != token:
            raise AuthenticationError("Token has been revoked")
        doc = await self.players.players.find_one({"id": payload["id"]})
        if not doc:
            raise AuthenticationError("Invalid token")
        return Player(**doc)

    async def check_user(self, username: str, token: Optional[str] = None) -> CheckUserOut:
        doc = await self.players.find_document(username)
        exists = doc is not None

        if not token:
            if exists and doc.get("role") == Role.GUEST.value:
                return CheckUserOut(
                    user_exists=True,
                    authenticated=True,
                    guest_login=True,
                    user=Player(**doc),
                    message="Guest user authenticated without token",
                )
            return self._by_existence(exists)

        try:
            player = await self.authenticate_token(token)
        except AuthenticationError as exc:
            return CheckUserOut(
                user_exists=exists,
                authenticated=False,
                token_expired=exc.expired,
                token_error=exc.message,
                message="Token expired, please log in again" if exc.expired else "Invalid token, please log in again",
            )

        if username_key(player.username) != username_key(username):
            return self._by_existence(exists)
        return CheckUserOut(
            user_exists=True,
            authenticated=True,
            user=player,
            message="User authenticated with existing token",
        )

    @staticmethod
    def _by_existence(exists: bool) -> CheckUserOut:
        if exists:
            return CheckUserOut(user_exists=True, authenticated=False, message="User exists, password required")
        return CheckUserOut(user_exists=False, authenticated=False, message="User not found, signup required")

    async def login(self, username: str, password: str) -> AuthOut:
        doc = await self.players.find_document(username or "")
        if not doc:
            raise AuthenticationError("User not found")
        if not doc.get("password_hash"):
            raise AuthenticationError("Guest accounts have no password")
        if not check_password_hash(doc["password_hash"], password or ""):
            raise AuthenticationError("Invalid password")

        player = Player(**doc)
        logger.info("Player %s logged in", player.username)
        return await self._open_session(player)

    async def signup(self, username: str, password: str, role: Any = Role.USER) -> AuthOut:
        role = parse_role(role)
        if not password or not password.strip():
            raise ValidationError("Password must not be empty.")
        player = await self.players.create(username, role, generate_password_hash(password))
        return await self._open_session(player)

    async def guest(self, username: str) -> Player:
        return await self.players.get_or_create_guest(username)

    async def logout(self, username: str) -> None:
        await self.sessions.delete_many({"username_key": username_key(username)})
        logger.info("Player %s logged out", username)


auth_service = AuthService()
