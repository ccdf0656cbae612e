from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime

from scarlett.adaptive.selection.question_selector import SelectionBranch
from scarlett.schemas.progress import (
    CardSchema,
    OptionLabel,
    ProgressRecord,
    Question,
    QuestionOptions,
    QuestionProgress,
)


class StudySession(BaseModel):
    """Server-side state of a quiz session between start and completion"""
    session_id: str
    user_id: str
    song_id: str
    locale: str
    questions: List[Question]
    cards: Dict[str, CardSchema] = Field(default_factory=dict)  # uuid -> latest card
    answers: List[QuestionProgress] = Field(default_factory=list)
    previous: Optional[ProgressRecord] = None
    selection: SelectionBranch
    due_count: int = 0
    new_count: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        return self.completed_at is not None

    def find_question(self, question_uuid: str) -> Optional[Question]:
        return next((q for q in self.questions if q.uuid == question_uuid), None)


class StartSessionRequest(BaseModel):
    user_id: str
    song_id: str
    locale: str = "en"


class SessionQuestion(BaseModel):
    """Question as shown to the learner (answer key withheld)"""
    uuid: str
    question: str
    options: QuestionOptions
    audio_cid: Optional[str] = None

    @classmethod
    def from_question(cls, question: Question) -> "SessionQuestion":
        return cls(
            uuid=question.uuid,
            question=question.question,
            options=question.options,
            audio_cid=question.audio_cid,
        )


class SessionResponse(BaseModel):
    session_id: str
    user_id: str
    song_id: str
    locale: str
    questions: List[SessionQuestion]
    selection: SelectionBranch
    due_count: int
    new_count: int
    answered: int = 0
    correct: int = 0
    started_at: datetime
    completed: bool = False

    @classmethod
    def from_session(cls, session: StudySession) -> "SessionResponse":
        return cls(
            session_id=session.session_id,
            user_id=session.user_id,
            song_id=session.song_id,
            locale=session.locale,
            questions=[SessionQuestion.from_question(q) for q in session.questions],
            selection=session.selection,
            due_count=session.due_count,
            new_count=session.new_count,
            answered=len(session.answers),
            correct=sum(1 for a in session.answers if a.correct),
            started_at=session.started_at,
            completed=session.completed,
        )


class AnswerRequest(BaseModel):
    question_uuid: str
    answer: Optional[OptionLabel] = None  # chosen option label
    correct: Optional[bool] = None  # pre-validated result, used when no label is sent


class AnswerResponse(BaseModel):
    question_uuid: str
    correct: bool
    correct_answer: Optional[OptionLabel] = None
    rating: str
    card: CardSchema
    answered: int
    remaining: int


class CompleteResponse(BaseModel):
    progress_id: str
    progress: ProgressRecord


class DueQuestionsResponse(BaseModel):
    user_id: str
    song_id: str
    due: List[str]


class SchedulerConfigResponse(BaseModel):
    enable_fuzz: bool
    maximum_interval: int
    request_retention: float
    session_size: int
