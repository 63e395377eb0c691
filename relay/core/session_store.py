"""Conversation history storage.

Each session is an ordered list of turns capped at ``max_turns``; once an
append pushes a session past the cap, turns are dropped from the front.

Backends:
- InMemorySessionStore: process memory, LRU-bounded number of sessions.
  Lost on restart. Used by default and in tests.
- RedisSessionStore: one Redis list per session, JSON-encoded turns.

The store does not serialize callers. Use SessionLocks around any
read-compose-append sequence for a single session.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Protocol, Sequence

from redis import asyncio as aioredis

from relay.models import Session, Turn


logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 40


class SessionStore(Protocol):
    async def get_or_create(self, session_id: str) -> Session: ...

    async def append(self, session_id: str, turns: Sequence[Turn]) -> None: ...

    async def clear(self, session_id: str) -> None: ...


class InMemorySessionStore:
    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS, max_sessions: int = 1000) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.max_turns = max_turns
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, List[Turn]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def _touch(self, session_id: str) -> List[Turn]:
        turns = self._sessions.get(session_id)
        if turns is None:
            turns = []
            self._sessions[session_id] = turns
            while self.max_sessions and len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info("Evicted least recently used session %s", evicted)
        else:
            self._sessions.move_to_end(session_id)
        return turns

    async def get_or_create(self, session_id: str) -> Session:
        return Session(session_id=session_id, turns=list(self._touch(session_id)))

    async def append(self, session_id: str, turns: Sequence[Turn]) -> None:
        history = self._touch(session_id)
        history.extend(turns)
        overflow = len(history) - self.max_turns
        if overflow > 0:
            del history[:overflow]
            logger.debug("Trimmed %s oldest turns from session %s", overflow, session_id)

    async def clear(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class RedisSessionStore:
    def __init__(
        self,
        client: Any,
        max_turns: int = DEFAULT_MAX_TURNS,
        key_prefix: str = "chat_history:",
        ttl_seconds: int = 0,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.client = client
        self.max_turns = max_turns
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisSessionStore":
        return cls(aioredis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def get_or_create(self, session_id: str) -> Session:
        raw = await self.client.lrange(self._key(session_id), 0, -1)
        return Session(
            session_id=session_id,
            turns=[Turn.model_validate_json(item) for item in raw],
        )

    async def append(self, session_id: str, turns: Sequence[Turn]) -> None:
        if not turns:
            return
        key = self._key(session_id)
        await self.client.rpush(key, *(turn.model_dump_json() for turn in turns))
        await self.client.ltrim(key, -self.max_turns, -1)
        if self.ttl_seconds:
            await self.client.expire(key, self.ttl_seconds)

    async def clear(self, session_id: str) -> None:
        await self.client.delete(self._key(session_id))


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class SessionLocks:
    """One asyncio.Lock per session id, shared by everyone holding or awaiting it.

    An entry lives only while some request holds or waits on it, so the map
    stays as small as the number of sessions with requests in flight.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(session_id)
        if entry is None:
            entry = _LockEntry()
            self._locks[session_id] = entry
        # Waiters count as users.
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(session_id) is entry:
                del self._locks[session_id]

    def __len__(self) -> int:
        return len(self._locks)


def build_session_store(settings: Any) -> SessionStore:
    backend = settings.session_backend
    if backend == "memory":
        return InMemorySessionStore(
            max_turns=settings.max_history_turns,
            max_sessions=settings.max_sessions,
        )
    if backend == "redis":
        logger.info("Using Redis session store")
        return RedisSessionStore.from_url(
            settings.redis_url,
            max_turns=settings.max_history_turns,
            ttl_seconds=settings.session_ttl_seconds,
        )
    raise ValueError(f"Unknown SESSION_BACKEND: {backend!r}")
