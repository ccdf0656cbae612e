"""
Question bank
Read-only access to the multiple-choice questions of a song
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from scarlett.schemas.progress import Question
from scarlett.services.exceptions import ContentUnavailableError

logger = logging.getLogger(__name__)


class QuestionBank(ABC):
    @abstractmethod
    async def get_questions(self, song_id: str, locale: str) -> List[Question]:
        """All questions for a song in the learner's locale, in presentation order"""


class HttpQuestionBank(QuestionBank):
    """
    Fetches questions from the content gateway

    GET {base_url}/songs/{song_id}/questions/{locale} -> JSON list of questions
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy initialization of the HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def get_questions(self, song_id: str, locale: str) -> List[Question]:
        url = f"{self.base_url}/songs/{song_id}/questions/{locale}"
        try:
            response = await self._get_client().get(url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch questions from {url}: {e}")
            raise ContentUnavailableError(f"Failed to fetch questions: {e}") from e
        except ValueError as e:
            logger.error(f"Questions payload from {url} is not JSON: {e}")
            raise ContentUnavailableError("Questions payload is not JSON") from e

        if not isinstance(payload, list):
            raise ContentUnavailableError("Questions payload is not a list")

        questions = []
        for item in payload:
            try:
                questions.append(Question.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed question for song {song_id}: {e.error_count()} errors")

        logger.info(f"Loaded {len(questions)} questions for song {song_id} ({locale})")
        return questions

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class InMemoryQuestionBank(QuestionBank):
    """Fixed question sets keyed by (song_id, locale)"""

    def __init__(self, questions: Optional[Dict[Tuple[str, str], Iterable[Question]]] = None):
        self._questions: Dict[Tuple[str, str], List[Question]] = {
            key: list(value) for key, value in (questions or {}).items()
        }

    def add_questions(self, song_id: str, locale: str, questions: Iterable[Question]):
        self._questions[(song_id, locale)] = list(questions)

    async def get_questions(self, song_id: str, locale: str) -> List[Question]:
        return list(self._questions.get((song_id, locale), []))
