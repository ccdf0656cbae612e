from fastapi import APIRouter, Depends, HTTPException, Request
from typing import Optional
import logging

from scarlett.schemas.progress import CardSchema, ProgressRecord
from scarlett.schemas.study import (
    AnswerRequest,
    AnswerResponse,
    CompleteResponse,
    DueQuestionsResponse,
    SchedulerConfigResponse,
    SessionResponse,
    StartSessionRequest,
)
from scarlett.services.exceptions import (
    ContentUnavailableError,
    InvalidAnswerError,
    NoQuestionsError,
    ProgressStoreError,
    SessionAlreadyCompletedError,
    SessionConflictError,
    SessionNotFoundError,
    SessionStoreError,
    UnknownQuestionError,
)
from scarlett.services.study_session import StudySessionService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_study_service(request: Request) -> StudySessionService:
    """Service instance built at startup"""
    return request.app.state.study_service


@router.post("/sessions", response_model=SessionResponse)
async def start_session(
    request: StartSessionRequest,
    service: StudySessionService = Depends(get_study_service),
):
    """
    Start a quiz session

    Picks up to 20 questions: due reviews first, then questions the learner
    has never seen.
    """
    try:
        session = await service.start_session(request.user_id, request.song_id, request.locale)
        return SessionResponse.from_session(session)
    except NoQuestionsError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ContentUnavailableError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except SessionStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Failed to start session")
        raise HTTPException(status_code=500, detail=f"Session error: {str(e)}")


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    service: StudySessionService = Depends(get_study_service),
):
    try:
        session = await service.get_session(session_id)
        return SessionResponse.from_session(session)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except SessionStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/sessions/{session_id}/answers", response_model=AnswerResponse)
async def submit_answer(
    session_id: str,
    request: AnswerRequest,
    service: StudySessionService = Depends(get_study_service),
):
    """Grade an answer and reschedule the question"""
    try:
        outcome = await service.record_answer(
            session_id,
            request.question_uuid,
            answer=request.answer,
            correct=request.correct,
        )
    except (SessionNotFoundError, UnknownQuestionError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (SessionAlreadyCompletedError, SessionConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidAnswerError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Failed to record answer")
        raise HTTPException(status_code=500, detail=f"Scheduling error: {str(e)}")

    return AnswerResponse(
        question_uuid=outcome.question.uuid,
        correct=outcome.correct,
        correct_answer=outcome.question.correct_answer,
        rating=outcome.rating.name.lower(),
        card=CardSchema.from_card(outcome.card),
        answered=outcome.answered,
        remaining=outcome.remaining,
    )


@router.post("/sessions/{session_id}/complete", response_model=CompleteResponse)
async def complete_session(
    session_id: str,
    service: StudySessionService = Depends(get_study_service),
):
    """Save the session's answers and updated cards as the learner's latest progress"""
    try:
        progress_id, record = await service.complete_session(session_id)
        return CompleteResponse(progress_id=progress_id, progress=record)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (SessionAlreadyCompletedError, SessionConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (ProgressStoreError, SessionStoreError) as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Failed to complete session")
        raise HTTPException(status_code=500, detail=f"Completion error: {str(e)}")


@router.get("/progress/{user_id}/{song_id}", response_model=Optional[ProgressRecord])
async def get_latest_progress(
    user_id: str,
    song_id: str,
    service: StudySessionService = Depends(get_study_service),
):
    """Latest progress record, or null if the learner never finished a session"""
    try:
        return await service.get_latest_progress(user_id, song_id)
    except ProgressStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/progress/{user_id}/{song_id}/due", response_model=DueQuestionsResponse)
async def get_due_questions(
    user_id: str,
    song_id: str,
    service: StudySessionService = Depends(get_study_service),
):
    try:
        due = await service.due_questions(user_id, song_id)
    except ProgressStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return DueQuestionsResponse(user_id=user_id, song_id=song_id, due=due)


@router.get("/config", response_model=SchedulerConfigResponse)
async def get_scheduler_config(service: StudySessionService = Depends(get_study_service)):
    """Scheduling parameters in effect"""
    return SchedulerConfigResponse(
        **service.algorithm.get_parameters(),
        session_size=service.selector.session_size,
    )
