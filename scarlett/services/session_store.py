"""
Session store
In-flight quiz sessions, kept until completion or expiry

Sessions change through ``update``, which applies a change to the stored copy
and saves it in one step, so concurrent answers to the same session never
overwrite each other.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, TypeVar

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError, WatchError

from scarlett.schemas.study import StudySession
from scarlett.services.exceptions import (
    SessionConflictError,
    SessionNotFoundError,
    SessionStoreError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionStore(ABC):
    @abstractmethod
    async def get(self, session_id: str) -> Optional[StudySession]:
        ...

    @abstractmethod
    async def save(self, session: StudySession) -> None:
        ...

    @abstractmethod
    async def update(self, session_id: str, mutate: Callable[[StudySession], T]) -> T:
        """
        Apply mutate to the stored session and save the result atomically

        mutate may run more than once and must only change the session it is
        given. Exceptions it raises abort the update and propagate.

        Raises:
            SessionNotFoundError: no such session
        """

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        ...


class RedisSessionStore(SessionStore):
    """Sessions as JSON under ``session:{id}``, expiring after ttl_seconds"""

    def __init__(self, redis_conn: redis.Redis, ttl_seconds: int = 86400, max_retries: int = 5):
        self.redis = redis_conn
        self.ttl_seconds = ttl_seconds
        self.max_retries = max_retries

    @staticmethod
    def _key(session_id: str) -> str:
        return f"session:{session_id}"

    @staticmethod
    def _load(session_id: str, data) -> Optional[StudySession]:
        if not data:
            return None
        try:
            return StudySession.model_validate_json(data)
        except ValidationError as e:
            # Unreadable session is as good as an expired one
            logger.error(f"Corrupt session {session_id}: {e.error_count()} errors")
            return None

    async def get(self, session_id: str) -> Optional[StudySession]:
        try:
            data = await self.redis.get(self._key(session_id))
        except RedisError as e:
            logger.error(f"Failed to read session {session_id}: {e}")
            raise SessionStoreError(f"Failed to read session: {e}") from e
        return self._load(session_id, data)

    async def save(self, session: StudySession) -> None:
        try:
            await self.redis.set(
                self._key(session.session_id),
                session.model_dump_json(),
                ex=self.ttl_seconds,
            )
        except RedisError as e:
            logger.error(f"Failed to save session {session.session_id}: {e}")
            raise SessionStoreError(f"Failed to save session: {e}") from e

    async def update(self, session_id: str, mutate: Callable[[StudySession], T]) -> T:
        """Optimistic WATCH/MULTI transaction, retried when another writer wins"""
        key = self._key(session_id)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for attempt in range(1, self.max_retries + 1):
                    try:
                        await pipe.watch(key)
                        session = self._load(session_id, await pipe.get(key))
                        if session is None:
                            raise SessionNotFoundError(session_id)

                        result = mutate(session)

                        pipe.multi()
                        pipe.set(key, session.model_dump_json(), ex=self.ttl_seconds)
                        await pipe.execute()
                        return result
                    except WatchError:
                        logger.warning(f"Session {session_id} changed during update (attempt {attempt})")
        except RedisError as e:
            logger.error(f"Failed to update session {session_id}: {e}")
            raise SessionStoreError(f"Failed to update session: {e}") from e

        raise SessionConflictError(session_id)

    async def delete(self, session_id: str) -> bool:
        try:
            return bool(await self.redis.delete(self._key(session_id)))
        except RedisError as e:
            raise SessionStoreError(f"Failed to delete session: {e}") from e


class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._sessions: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, session_id: str) -> Optional[StudySession]:
        data = self._sessions.get(session_id)
        return StudySession.model_validate_json(data) if data else None

    async def save(self, session: StudySession) -> None:
        # Serialised copy; callers never hold the stored object
        self._sessions[session.session_id] = session.model_dump_json()

    async def update(self, session_id: str, mutate: Callable[[StudySession], T]) -> T:
        async with self._lock:
            session = await self.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            result = mutate(session)
            await self.save(session)
            return result

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None
