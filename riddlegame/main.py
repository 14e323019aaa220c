import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import AuthService, auth_service
from .catalog import RiddleCatalog, catalog
from .db import db, settings
from .errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    RiddleGameError,
    ValidationError,
)
from .models import Player, Riddle, Role, SolvedRecord
from .players import PlayerStore, parse_role, player_store
from .schemas import (
    AuthOut,
    CheckUserIn,
    CheckUserOut,
    CredentialsIn,
    GuestIn,
    LeaderboardEntry,
    RecordTimeIn,
    RecordTimeOut,
    RiddleIn,
    RiddleUpdateIn,
    SignupIn,
    SolvedIn,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = [
    (ConflictError, 409),
    (ValidationError, 400),
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (AuthenticationError, 401),
]


@asynccontextmanager
async def lifespan(_: FastAPI):
    # an unreachable store at boot is fatal
    await db.command("ping")
    if settings.SEED_ON_STARTUP:
        created = await catalog.seed()
        logger.info("Seeded %d starter riddles", created)
    yield


app = FastAPI(title="Riddle Game API", lifespan=lifespan)

origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.exception_handler(RiddleGameError)
async def riddle_game_error(_: Request, exc: RiddleGameError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 400)
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error(_: Request, exc: RequestValidationError):
    # rejected input is left out, it may hold NaN which JSON cannot carry
    errors = [{key: value for key, value in err.items() if key not in ("input", "ctx")} for err in exc.errors()]
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


def get_catalog() -> RiddleCatalog:
    return catalog


def get_players() -> PlayerStore:
    return player_store


def get_auth() -> AuthService:
    return auth_service


def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def current_player(
    token: Optional[str] = Depends(bearer_token),
    auth: AuthService = Depends(get_auth),
) -> Player:
    if not token:
        raise AuthenticationError("Authentication required")
    return await auth.authenticate_token(token)


def require(capability: str):
    async def dependency(player: Player = Depends(current_player)) -> Player:
        if not getattr(player, capability)():
            raise PermissionDeniedError(f"Role '{player.role.value}' is not allowed to do that.")
        return player

    return dependency


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/players/check-user", response_model=CheckUserOut)
async def check_user(
    payload: CheckUserIn,
    token: Optional[str] = Depends(bearer_token),
    auth: AuthService = Depends(get_auth),
):
    return await auth.check_user(payload.username, token)


@app.post("/api/players/login", response_model=AuthOut)
async def login(payload: CredentialsIn, auth: AuthService = Depends(get_auth)):
    return await auth.login(payload.username, payload.password)


@app.post("/api/players/signup", response_model=AuthOut, status_code=201)
async def signup(payload: SignupIn, auth: AuthService = Depends(get_auth)):
    role = parse_role(payload.role)
    if role == Role.ADMIN and not settings.ALLOW_ADMIN_SIGNUP:
        raise PermissionDeniedError("Admin accounts cannot be created through signup.")
    return await auth.signup(payload.username, payload.password, role)


@app.post("/api/players/guest", response_model=Player)
async def guest(payload: GuestIn, auth: AuthService = Depends(get_auth)):
    return await auth.guest(payload.username)


@app.post("/api/players/logout")
async def logout(player: Player = Depends(current_player), auth: AuthService = Depends(get_auth)):
    await auth.logout(player.username)
    return {"ok": True}


@app.get("/api/players/leaderboard", response_model=List[LeaderboardEntry])
async def leaderboard(
    limit: Optional[int] = Query(default=None, ge=1),
    players: PlayerStore = Depends(get_players),
):
    ranked = await players.leaderboard(limit)
    return [LeaderboardEntry(username=p.username, lowest_time=p.lowest_time) for p in ranked]


@app.put("/api/players/{player_id}/time", response_model=RecordTimeOut)
async def record_time(player_id: str, payload: RecordTimeIn, players: PlayerStore = Depends(get_players)):
    player, improved = await players.record_time(player_id, payload.time)
    return RecordTimeOut(lowest_time=player.lowest_time, improved=improved)


@app.post("/api/players/{player_id}/solved", response_model=SolvedRecord, status_code=201)
async def record_solved(
    player_id: str,
    payload: SolvedIn,
    players: PlayerStore = Depends(get_players),
    riddles: RiddleCatalog = Depends(get_catalog),
):
    await riddles.get(payload.riddle_id)
    return await players.record_solved(player_id, payload.riddle_id, payload.time_to_solve)


@app.get("/api/players/{player_id}/riddles", response_model=List[Riddle])
async def riddles_to_play(
    player_id: str,
    difficulty: str,
    unsolved: bool = True,
    players: PlayerStore = Depends(get_players),
    riddles: RiddleCatalog = Depends(get_catalog),
):
    await players.get_by_id(player_id)
    if not unsolved:
        return await riddles.get_by_difficulty(difficulty)
    solved_ids = await players.get_solved_riddle_ids(player_id)
    return await riddles.get_unsolved(difficulty, solved_ids)


@app.get("/api/riddles", response_model=List[Riddle])
async def list_riddles(
    difficulty: Optional[str] = None,
    _: Player = Depends(require("can_view_all_riddles")),
    riddles: RiddleCatalog = Depends(get_catalog),
):
    if difficulty:
        return await riddles.get_by_difficulty(difficulty)
    return await riddles.get_all()


@app.post("/api/riddles", response_model=Riddle, status_code=201)
async def create_riddle(
    payload: RiddleIn,
    _: Player = Depends(require("can_create_riddles")),
    riddles: RiddleCatalog = Depends(get_catalog),
):
    return await riddles.create(payload.model_dump())


@app.put("/api/riddles/{riddle_id}", response_model=Riddle)
async def update_riddle(
    riddle_id: str,
    payload: RiddleUpdateIn,
    _: Player = Depends(require("can_edit_riddles")),
    riddles: RiddleCatalog = Depends(get_catalog),
):
    return await riddles.update(riddle_id, payload.model_dump(exclude_unset=True))


@app.delete("/api/riddles/{riddle_id}")
async def delete_riddle(
    riddle_id: str,
    _: Player = Depends(require("can_delete_riddles")),
    riddles: RiddleCatalog = Depends(get_catalog),
):
    await riddles.delete(riddle_id)
    return {"ok": True}


@app.post("/api/riddles/seed")
async def seed_riddles(
    _: Player = Depends(require("can_edit_riddles")),
    riddles: RiddleCatalog = Depends(get_catalog),
):
    created = await riddles.seed()
    return {"created": created}
