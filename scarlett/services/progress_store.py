"""
Progress store
Keeps a newest-first history of progress records per learner and song
"""
import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from scarlett.schemas.progress import CardSchema, ProgressRecord
from scarlett.services.exceptions import ProgressStoreError

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except (ValueError, OverflowError):
            return default
    return default


def _as_epoch_ms(value: Any, default: int) -> int:
    """Epoch milliseconds from a number, numeric string or ISO-8601 string"""
    if isinstance(value, str):
        try:
            return int(float(value))
        except (ValueError, OverflowError):
            pass
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return default
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return _as_int(value, default)


def normalize_progress(raw: Dict[str, Any]) -> ProgressRecord:
    """
    Turn a stored payload into a ProgressRecord without losing the whole
    record to one bad entry

    Entries without a uuid are dropped. Entries whose card cannot be read keep
    their uuid (so the question still counts as seen) but lose the card.
    Missing counters default to 0, missing timestamps to now.
    """
    now = _now_ms()
    questions = []
    for entry in raw.get("questions") or []:
        if not isinstance(entry, dict):
            continue
        question_uuid = entry.get("uuid")
        if not isinstance(question_uuid, str) or not question_uuid:
            logger.warning("Dropping progress entry without uuid")
            continue

        card = None
        if entry.get("fsrs") is not None:
            try:
                card = CardSchema.model_validate(entry["fsrs"])
            except ValidationError as e:
                logger.warning(f"Unreadable card for question {question_uuid}: {e.error_count()} errors")

        questions.append({
            "uuid": question_uuid,
            "correct": bool(entry.get("correct", False)),
            "timestamp": _as_epoch_ms(entry.get("timestamp"), now),
            "fsrs": card,
        })

    return ProgressRecord(
        user_id=str(raw.get("userId", "")),
        song_id=str(raw.get("songId", "")),
        questions=questions,
        total_correct=_as_int(raw.get("totalCorrect"), 0),
        total_questions=_as_int(raw.get("totalQuestions"), 0),
        completed_at=_as_epoch_ms(raw.get("completedAt"), now),
    )


class ProgressStore(ABC):
    """Durable storage for progress records"""

    @abstractmethod
    async def get_latest_progress(self, user_id: str, song_id: str) -> Optional[ProgressRecord]:
        """Most recent record for this learner and song, or None"""

    @abstractmethod
    async def save_progress(self, record: ProgressRecord) -> str:
        """Persist a record and return its id"""


class RedisProgressStore(ProgressStore):
    """
    Redis-backed progress history

    Layout: list ``progress:{user_id}:{song_id}``, newest first, each item a
    JSON object ``{"id": ..., "record": <wire record>}``, capped at
    history_limit items.
    """

    def __init__(self, redis_conn: redis.Redis, history_limit: int = 50):
        self.redis = redis_conn
        self.history_limit = history_limit

    @staticmethod
    def _key(user_id: str, song_id: str) -> str:
        return f"progress:{user_id}:{song_id}"

    async def get_latest_progress(self, user_id: str, song_id: str) -> Optional[ProgressRecord]:
        key = self._key(user_id, song_id)
        try:
            data = await self.redis.lindex(key, 0)
        except RedisError as e:
            logger.error(f"Failed to read progress for {key}: {e}")
            raise ProgressStoreError(f"Failed to read progress: {e}") from e

        if not data:
            return None

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt progress payload under {key}: {e}")
            raise ProgressStoreError("Corrupt progress payload") from e

        record = payload.get("record") if isinstance(payload, dict) else None
        if not isinstance(record, dict):
            raise ProgressStoreError("Corrupt progress payload")
        return normalize_progress(record)

    async def save_progress(self, record: ProgressRecord) -> str:
        key = self._key(record.user_id, record.song_id)
        progress_id = uuid.uuid4().hex
        payload = json.dumps({"id": progress_id, "record": record.to_wire()})

        try:
            await self.redis.lpush(key, payload)
            await self.redis.ltrim(key, 0, self.history_limit - 1)
        except RedisError as e:
            logger.error(f"Failed to save progress for {key}: {e}")
            raise ProgressStoreError(f"Failed to save progress: {e}") from e

        logger.info(f"Saved progress {progress_id} for {key} ({len(record.questions)} entries)")
        return progress_id


class InMemoryProgressStore(ProgressStore):
    """Process-local progress history for development and tests"""

    def __init__(self):
        self._records: Dict[Tuple[str, str], List[Tuple[str, Dict]]] = defaultdict(list)

    async def get_latest_progress(self, user_id: str, song_id: str) -> Optional[ProgressRecord]:
        history = self._records.get((user_id, song_id))
        if not history:
            return None
        return normalize_progress(history[0][1])

    async def save_progress(self, record: ProgressRecord) -> str:
        progress_id = uuid.uuid4().hex
        self._records[(record.user_id, record.song_id)].insert(0, (progress_id, record.to_wire()))
        return progress_id
