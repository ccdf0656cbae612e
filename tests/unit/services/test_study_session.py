"""
Unit tests for StudySessionService

Tests cover:
- Session start and question selection
- Answer grading and card updates
- Completion and progress persistence
- Degraded progress store
"""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock
from redis.exceptions import WatchError

from scarlett.adaptive.fsrs import Rating, State
from scarlett.adaptive.selection.question_selector import SelectionBranch
from scarlett.schemas.progress import ProgressRecord, Question
from scarlett.schemas.study import StudySession
from scarlett.services.exceptions import (
    InvalidAnswerError,
    NoQuestionsError,
    ProgressStoreError,
    SessionAlreadyCompletedError,
    SessionNotFoundError,
    UnknownQuestionError,
)
from scarlett.services.session_store import InMemorySessionStore, RedisSessionStore
from scarlett.services.study_session import StudySessionService
from tests.fixtures import create_mock_question, create_progress_entry, create_progress_record


async def seed_progress(store, entries):
    record = ProgressRecord.model_validate(create_progress_record(entries))
    await store.save_progress(record)


class TestStartSession:

    async def test_first_session_bootstraps(self, study_service, session_store, fixed_now):
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)

        assert [q.uuid for q in session.questions] == [f"q{i}" for i in range(1, 21)]
        assert session.selection == SelectionBranch.BOOTSTRAP
        assert session.cards == {}
        assert session.started_at == fixed_now
        assert await session_store.get(session.session_id) is not None

    async def test_due_questions_come_first(self, study_service, progress_store, fixed_now):
        await seed_progress(progress_store, [
            create_progress_entry("q1", due=fixed_now - timedelta(days=1)),
            create_progress_entry("q2", due=fixed_now + timedelta(days=1)),
        ])

        session = await study_service.start_session("user_1", "song_1", now=fixed_now)

        assert [q.uuid for q in session.questions] == ["q1"] + [f"q{i}" for i in range(3, 22)]
        assert session.selection == SelectionBranch.DUE_AND_NEW
        assert session.due_count == 1
        assert session.new_count == 19
        assert set(session.cards) == {"q1", "q2"}

    async def test_no_questions(self, study_service):
        with pytest.raises(NoQuestionsError):
            await study_service.start_session("user_1", "unknown_song")

    async def test_progress_outage_starts_fresh(self, question_bank, session_store, fixed_now):
        progress_store = AsyncMock()
        progress_store.get_latest_progress.side_effect = ProgressStoreError("down")
        service = StudySessionService(question_bank, progress_store, session_store)

        session = await service.start_session("user_1", "song_1", now=fixed_now)

        assert session.selection == SelectionBranch.BOOTSTRAP
        assert len(session.questions) == 20


class TestRecordAnswer:

    async def test_correct_answer_creates_card(self, study_service, fixed_now):
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)

        outcome = await study_service.record_answer(session.session_id, "q1", answer="a", now=fixed_now)

        assert outcome.correct is True
        assert outcome.rating == Rating.GOOD
        assert outcome.card.state == State.LEARNING
        assert outcome.card.reps == 1
        assert outcome.card.due > fixed_now
        assert outcome.answered == 1
        assert outcome.remaining == 19

    async def test_wrong_answer_rates_again(self, study_service, fixed_now):
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)

        outcome = await study_service.record_answer(session.session_id, "q1", answer="c", now=fixed_now)

        assert outcome.correct is False
        assert outcome.rating == Rating.AGAIN
        assert outcome.card.due == fixed_now + timedelta(minutes=1)

    async def test_correctness_flag_without_label(self, study_service, fixed_now):
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)

        outcome = await study_service.record_answer(session.session_id, "q2", correct=True, now=fixed_now)

        assert outcome.rating == Rating.GOOD

    async def test_answer_is_persisted(self, study_service, fixed_now):
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)
        await study_service.record_answer(session.session_id, "q1", answer="a", now=fixed_now)

        stored = await study_service.get_session(session.session_id)

        assert [a.uuid for a in stored.answers] == ["q1"]
        assert stored.answers[0].timestamp == int(fixed_now.timestamp() * 1000)
        assert stored.cards["q1"].state == State.LEARNING

    async def test_prior_card_is_advanced(self, study_service, progress_store, fixed_now):
        await seed_progress(progress_store, [
            create_progress_entry("q1", due=fixed_now - timedelta(days=1)),
        ])
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)

        outcome = await study_service.record_answer(session.session_id, "q1", answer="b", now=fixed_now)

        assert outcome.card.state == State.RELEARNING
        assert outcome.card.lapses == 1
        assert outcome.card.reps == 4

    async def test_repeat_answer_uses_session_card(self, study_service, fixed_now):
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)
        await study_service.record_answer(session.session_id, "q1", answer="a", now=fixed_now)

        later = fixed_now + timedelta(minutes=10)
        outcome = await study_service.record_answer(session.session_id, "q1", answer="a", now=later)

        assert outcome.card.reps == 2
        assert outcome.card.state == State.REVIEW

    async def test_concurrent_answer_is_not_lost(
        self, question_bank, progress_store, mock_redis, mock_pipeline, fixed_now
    ):
        local = StudySessionService(question_bank, progress_store, InMemorySessionStore())
        session = await local.start_session("user_1", "song_1", now=fixed_now)
        before = session.model_dump_json()
        await local.record_answer(session.session_id, "q2", answer="a", now=fixed_now)
        after = (await local.get_session(session.session_id)).model_dump_json()

        # Another request saved its answer between our read and our write
        mock_pipeline.get.side_effect = [before, after]
        mock_pipeline.execute.side_effect = [WatchError(), [True]]
        service = StudySessionService(question_bank, progress_store, RedisSessionStore(mock_redis))

        outcome = await service.record_answer(session.session_id, "q1", answer="a", now=fixed_now)

        saved = StudySession.model_validate_json(mock_pipeline.set.call_args.args[1])
        assert [a.uuid for a in saved.answers] == ["q2", "q1"]
        assert set(saved.cards) == {"q1", "q2"}
        assert outcome.answered == 2

    async def test_neither_label_nor_flag(self, study_service):
        session = await study_service.start_session("user_1", "song_1")
        with pytest.raises(InvalidAnswerError):
            await study_service.record_answer(session.session_id, "q1")

    async def test_label_without_answer_key(self, study_service, question_bank):
        question_bank.add_questions("song_2", "en", [
            Question.model_validate(create_mock_question("k1", correct_answer=None)),
        ])
        session = await study_service.start_session("user_1", "song_2")

        with pytest.raises(InvalidAnswerError):
            await study_service.record_answer(session.session_id, "k1", answer="a")

        outcome = await study_service.record_answer(session.session_id, "k1", correct=False)
        assert outcome.rating == Rating.AGAIN

    async def test_question_outside_session(self, study_service):
        session = await study_service.start_session("user_1", "song_1")
        with pytest.raises(UnknownQuestionError):
            await study_service.record_answer(session.session_id, "q25", answer="a")

    async def test_unknown_session(self, study_service):
        with pytest.raises(SessionNotFoundError):
            await study_service.record_answer("missing", "q1", answer="a")


class TestCompleteSession:

    async def test_saves_progress(self, study_service, fixed_now):
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)
        await study_service.record_answer(session.session_id, "q1", answer="a", now=fixed_now)
        await study_service.record_answer(session.session_id, "q2", answer="d", now=fixed_now)

        progress_id, record = await study_service.complete_session(session.session_id, now=fixed_now)

        assert progress_id
        assert record.total_correct == 1
        assert record.total_questions == 2
        assert record.completed_at == int(fixed_now.timestamp() * 1000)
        assert [q.uuid for q in record.questions] == ["q1", "q2"]

        latest = await study_service.get_latest_progress("user_1", "song_1")
        assert latest.questions[0].fsrs.state == State.LEARNING

    async def test_carries_forward_unanswered_history(self, study_service, progress_store, fixed_now):
        await seed_progress(progress_store, [
            create_progress_entry("q1", due=fixed_now - timedelta(days=1)),
            create_progress_entry("q2", due=fixed_now + timedelta(days=1)),
        ])
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)
        await study_service.record_answer(session.session_id, "q1", answer="a", now=fixed_now)

        _, record = await study_service.complete_session(session.session_id, now=fixed_now)

        assert [q.uuid for q in record.questions] == ["q2", "q1"]
        assert record.total_questions == 1

    async def test_next_session_uses_saved_cards(self, study_service, fixed_now):
        session = await study_service.start_session("user_1", "song_1", now=fixed_now)
        for i in range(1, 21):
            await study_service.record_answer(session.session_id, f"q{i}", answer="a", now=fixed_now)
        await study_service.complete_session(session.session_id, now=fixed_now)

        # learning cards come due ten minutes later
        next_session = await study_service.start_session(
            "user_1", "song_1", now=fixed_now + timedelta(minutes=11)
        )

        assert next_session.selection == SelectionBranch.DUE_ONLY
        assert [q.uuid for q in next_session.questions] == [f"q{i}" for i in range(1, 21)]

    async def test_completed_session_is_closed(self, study_service):
        session = await study_service.start_session("user_1", "song_1")
        await study_service.complete_session(session.session_id)

        with pytest.raises(SessionAlreadyCompletedError):
            await study_service.complete_session(session.session_id)
        with pytest.raises(SessionAlreadyCompletedError):
            await study_service.record_answer(session.session_id, "q1", answer="a")

    async def test_store_failure_propagates(self, question_bank, session_store):
        progress_store = AsyncMock()
        progress_store.get_latest_progress.return_value = None
        progress_store.save_progress.side_effect = ProgressStoreError("down")
        service = StudySessionService(question_bank, progress_store, session_store)
        session = await service.start_session("user_1", "song_1")

        with pytest.raises(ProgressStoreError):
            await service.complete_session(session.session_id)

        assert not (await service.get_session(session.session_id)).completed


class TestDueQuestions:

    async def test_no_history(self, study_service):
        assert await study_service.due_questions("user_1", "song_1") == []

    async def test_due_in_record_order(self, study_service, progress_store, fixed_now):
        yesterday = fixed_now - timedelta(days=1)
        await seed_progress(progress_store, [
            create_progress_entry("q9", due=yesterday),
            create_progress_entry("q2", due=fixed_now + timedelta(days=1)),
            create_progress_entry("q4", due=yesterday),
            create_progress_entry("q9", due=yesterday),
        ])

        assert await study_service.due_questions("user_1", "song_1", now=fixed_now) == ["q9", "q4"]
