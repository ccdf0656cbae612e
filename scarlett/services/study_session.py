"""
Study Session Service
Runs a quiz session end to end: pick questions, grade answers, persist progress

Flow:
1. start_session    - question bank + latest progress -> QuestionSelector
2. record_answer    - answer -> rating -> FSRSAlgorithm.advance on the session's card map
3. complete_session - answers (plus untouched history) -> ProgressRecord -> ProgressStore
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from scarlett.adaptive.fsrs import Card, FSRSAlgorithm, Rating
from scarlett.adaptive.selection import QuestionSelector
from scarlett.schemas.progress import CardSchema, ProgressRecord, Question, QuestionProgress
from scarlett.schemas.study import StudySession
from scarlett.services.exceptions import (
    InvalidAnswerError,
    NoQuestionsError,
    ProgressStoreError,
    SessionAlreadyCompletedError,
    SessionNotFoundError,
    UnknownQuestionError,
)
from scarlett.services.progress_store import ProgressStore
from scarlett.services.question_bank import QuestionBank
from scarlett.services.session_store import SessionStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


@dataclass
class AnswerOutcome:
    """Result of grading one answer"""
    question: Question
    correct: bool
    rating: Rating
    card: Card
    answered: int
    remaining: int


class StudySessionService:
    """
    Glue between the scheduling core and its collaborators

    The core objects (algorithm, selector) are stateless; all per-learner
    state lives in the stores.
    """

    def __init__(
        self,
        question_bank: QuestionBank,
        progress_store: ProgressStore,
        session_store: SessionStore,
        algorithm: Optional[FSRSAlgorithm] = None,
        selector: Optional[QuestionSelector] = None,
    ):
        self.question_bank = question_bank
        self.progress_store = progress_store
        self.session_store = session_store
        self.algorithm = algorithm or FSRSAlgorithm()
        self.selector = selector or QuestionSelector()

    async def start_session(
        self,
        user_id: str,
        song_id: str,
        locale: str = "en",
        now: Optional[datetime] = None,
    ) -> StudySession:
        now = now or _utcnow()

        questions = await self.question_bank.get_questions(song_id, locale)
        if not questions:
            raise NoQuestionsError(song_id, locale)

        try:
            previous = await self.progress_store.get_latest_progress(user_id, song_id)
        except ProgressStoreError as e:
            logger.error(f"Progress unavailable for {user_id}/{song_id}, starting fresh: {e}")
            previous = None

        plan = self.selector.plan(questions, previous, now)

        session = StudySession(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            song_id=song_id,
            locale=locale,
            questions=plan.questions,
            cards=self._latest_cards(previous),
            previous=previous,
            selection=plan.branch,
            due_count=plan.due_count,
            new_count=plan.new_count,
            started_at=now,
        )
        await self.session_store.save(session)

        logger.info(
            f"Started session {session.session_id} for {user_id}/{song_id}: "
            f"{len(plan.questions)} questions ({plan.branch.value}, "
            f"{plan.due_count} due, {plan.new_count} new)"
        )
        return session

    async def get_session(self, session_id: str) -> StudySession:
        session = await self.session_store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def record_answer(
        self,
        session_id: str,
        question_uuid: str,
        answer: Optional[str] = None,
        correct: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> AnswerOutcome:
        """
        Grade one answer and advance that question's card

        The session is changed through SessionStore.update, so answers to the
        same session arriving together are applied one after the other.

        Args:
            answer: Chosen option label (a-d); takes precedence over correct
            correct: Correctness decided elsewhere, used when no label is given
        """
        now = now or _utcnow()

        def apply(session: StudySession) -> AnswerOutcome:
            if session.completed:
                raise SessionAlreadyCompletedError(session_id)

            question = session.find_question(question_uuid)
            if question is None:
                raise UnknownQuestionError(question_uuid)

            if answer is not None:
                if question.correct_answer is None:
                    raise InvalidAnswerError(f"Question {question_uuid} has no answer key")
                is_correct = question.is_correct(answer)
            elif correct is None:
                raise InvalidAnswerError("Either answer or correct is required")
            else:
                is_correct = correct

            rating = self.algorithm.rate(is_correct)
            prior = session.cards.get(question_uuid)
            card = self.algorithm.advance(prior.to_card() if prior else None, rating, now)

            card_schema = CardSchema.from_card(card)
            session.cards[question_uuid] = card_schema
            session.answers.append(
                QuestionProgress(
                    uuid=question_uuid,
                    correct=is_correct,
                    timestamp=_epoch_ms(now),
                    fsrs=card_schema,
                )
            )

            answered = {a.uuid for a in session.answers}
            return AnswerOutcome(
                question=question,
                correct=is_correct,
                rating=rating,
                card=card,
                answered=len(session.answers),
                remaining=sum(1 for q in session.questions if q.uuid not in answered),
            )

        outcome = await self.session_store.update(session_id, apply)
        logger.debug(
            f"Session {session_id}: {question_uuid} {'correct' if outcome.correct else 'incorrect'}, "
            f"next due {outcome.card.due.isoformat()}"
        )
        return outcome

    async def complete_session(
        self,
        session_id: str,
        now: Optional[datetime] = None,
    ) -> Tuple[str, ProgressRecord]:
        """
        Persist the session as a progress record and close it

        The session is closed first, so no answer can land after the record is
        built; it is reopened if the progress store rejects the record.
        """
        now = now or _utcnow()

        def close(session: StudySession) -> ProgressRecord:
            if session.completed:
                raise SessionAlreadyCompletedError(session_id)
            session.completed_at = now
            return self.build_progress_record(session, now)

        record = await self.session_store.update(session_id, close)
        try:
            progress_id = await self.progress_store.save_progress(record)
        except ProgressStoreError:
            await self.session_store.update(session_id, self._reopen)
            raise

        logger.info(
            f"Completed session {session_id}: {record.total_correct}/{record.total_questions} "
            f"correct, saved as {progress_id}"
        )
        return progress_id, record

    @staticmethod
    def _reopen(session: StudySession) -> None:
        session.completed_at = None

    def build_progress_record(self, session: StudySession, now: datetime) -> ProgressRecord:
        """
        Progress record for a finished session

        Entries of the previous record for questions not answered this time are
        carried forward first, so their cards keep scheduling them; this
        session's answers follow in the order they were given. Totals count
        this session only.
        """
        answered = {a.uuid for a in session.answers}
        carried: Dict[str, QuestionProgress] = {}
        if session.previous is not None:
            for entry in session.previous.questions:
                if entry.uuid not in answered:
                    carried.pop(entry.uuid, None)
                    carried[entry.uuid] = entry

        questions: List[QuestionProgress] = list(carried.values()) + list(session.answers)

        return ProgressRecord(
            user_id=session.user_id,
            song_id=session.song_id,
            questions=questions,
            total_correct=sum(1 for a in session.answers if a.correct),
            total_questions=len(session.answers),
            completed_at=_epoch_ms(now),
        )

    async def get_latest_progress(self, user_id: str, song_id: str) -> Optional[ProgressRecord]:
        return await self.progress_store.get_latest_progress(user_id, song_id)

    async def due_questions(
        self,
        user_id: str,
        song_id: str,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Uuids due for review, in the order the latest record lists them"""
        previous = await self.progress_store.get_latest_progress(user_id, song_id)
        if previous is None:
            return []

        due = self.selector.due_uuids(previous.questions, now or _utcnow())
        ordered = []
        for entry in previous.questions:
            if entry.uuid in due and entry.uuid not in ordered:
                ordered.append(entry.uuid)
        return ordered

    @staticmethod
    def _latest_cards(previous: Optional[ProgressRecord]) -> Dict[str, CardSchema]:
        cards: Dict[str, CardSchema] = {}
        if previous is None:
            return cards
        for entry in previous.questions:
            if entry.fsrs is not None:
                cards[entry.uuid] = entry.fsrs
        return cards
