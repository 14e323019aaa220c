from __future__ import annotations

import asyncio
import copy
from functools import lru_cache
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo import ReturnDocument


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    SECRET_KEY: str = "change-me"
    TOKEN_MAX_AGE_SEC: int = 7 * 24 * 60 * 60
    MONGODB_URL: Optional[str] = None
    MONGODB_DB: str = "riddlegame"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    SEED_ON_STARTUP: bool = True
    ALLOW_ADMIN_SIGNUP: bool = False
    LOG_LEVEL: str = "INFO"

    # console client
    API_URL: str = "http://localhost:8000/api"
    REQUEST_TIMEOUT_SEC: float = 10.0
    TOKEN_FILE: str = ".auth-tokens.json"
    AUTH_FAILURE_POLICY: str = "retry"
    FILTER_SOLVED: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


Document = Dict[str, Any]

# a missing field reads as None, the way Mongo compares it against null
QUERY_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$gt": lambda actual, operand: actual is not None and actual > operand,
    "$nin": lambda actual, operand: actual not in operand,
}


def matches(doc: Document, query: Optional[Document]) -> bool:
    for key, expected in (query or {}).items():
        actual = doc.get(key)
        if not isinstance(expected, dict):
            if actual != expected:
                return False
            continue
        for op, operand in expected.items():
            test = QUERY_OPERATORS.get(op)
            if test is None:
                raise ValueError(f"Unsupported query operator: {op}")
            if not test(actual, operand):
                return False
    return True


def apply_update(doc: Document, update: Document) -> Document:
    for op, payload in update.items():
        if op != "$set":
            raise ValueError(f"Unsupported update operator: {op}")
        for key, value in payload.items():
            doc[key] = copy.deepcopy(value)
    return doc


def _upserted(query: Document, update: Document) -> Document:
    seed = {key: copy.deepcopy(value) for key, value in query.items() if not isinstance(value, dict)}
    return apply_update(seed, update)


class InMemoryCursor:
    """Lazily evaluated result of :meth:`InMemoryCollection.find`."""

    def __init__(self, collection: "InMemoryCollection", query: Document):
        self._collection = collection
        self._query = query
        self._order: Optional[tuple] = None

    def sort(self, key: str, direction: int = 1) -> "InMemoryCursor":
        self._order = (key, direction)
        return self

    async def _results(self) -> AsyncIterator[Document]:
        docs = await self._collection.snapshot(self._query)
        if self._order:
            key, direction = self._order
            docs.sort(key=lambda doc: doc.get(key), reverse=direction < 0)
        for doc in docs:
            yield doc

    def __aiter__(self) -> AsyncIterator[Document]:
        return self._results()


class InMemoryCollection:
    """Async collection kept in process memory.

    Method names and arguments follow ``pymongo``'s async collections, limited
    to what the repositories call, so either backend can be plugged in. Every
    operation holds the collection lock, which makes each one atomic.
    """

    def __init__(self):
        self._docs: List[Document] = []
        self._lock = asyncio.Lock()

    def _position(self, query: Document) -> Optional[int]:
        return next((i for i, doc in enumerate(self._docs) if matches(doc, query)), None)

    async def snapshot(self, query: Document) -> List[Document]:
        async with self._lock:
            return [copy.deepcopy(doc) for doc in self._docs if matches(doc, query)]

    def find(self, query: Optional[Document] = None) -> InMemoryCursor:
        return InMemoryCursor(self, query or {})

    async def find_one(self, query: Document) -> Optional[Document]:
        async with self._lock:
            position = self._position(query)
            return None if position is None else copy.deepcopy(self._docs[position])

    async def insert_one(self, document: Document) -> None:
        async with self._lock:
            self._docs.append(copy.deepcopy(document))

    async def update_one(self, query: Document, update: Document, upsert: bool = False) -> None:
        await self.find_one_and_update(query, update, upsert=upsert)

    async def find_one_and_update(
        self,
        query: Document,
        update: Document,
        *,
        upsert: bool = False,
        return_document: ReturnDocument = ReturnDocument.BEFORE,
    ) -> Optional[Document]:
        async with self._lock:
            position = self._position(query)
            if position is None:
                if not upsert:
                    return None
                self._docs.append(_upserted(query, update))
                before, after = None, self._docs[-1]
            else:
                before = self._docs[position]
                after = apply_update(copy.deepcopy(before), update)
                self._docs[position] = after
            chosen = after if return_document == ReturnDocument.AFTER else before
            return copy.deepcopy(chosen)

    async def find_one_and_delete(self, query: Document) -> Optional[Document]:
        async with self._lock:
            position = self._position(query)
            return None if position is None else copy.deepcopy(self._docs.pop(position))

    async def delete_many(self, query: Document) -> None:
        async with self._lock:
            self._docs = [doc for doc in self._docs if not matches(doc, query)]


class InMemoryDatabase:
    def __init__(self):
        self.riddles = InMemoryCollection()
        self.players = InMemoryCollection()
        self.solved = InMemoryCollection()
        self.sessions = InMemoryCollection()

    async def command(self, name: str) -> Document:
        # answers the same ``ping`` a Mongo server does
        return {"ok": 1.0}


def connect(config: Settings) -> Any:
    """Return the document database the repositories talk to.

    Without ``MONGODB_URL`` everything lives in process memory, which is what
    the tests and a quick local game use.
    """
    if not config.MONGODB_URL:
        return InMemoryDatabase()

    from pymongo import AsyncMongoClient

    client = AsyncMongoClient(config.MONGODB_URL)
    return client[config.MONGODB_DB]


db: Any = connect(settings)
