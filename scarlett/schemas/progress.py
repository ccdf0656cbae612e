"""
Wire shapes for questions, FSRS cards and progress records
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from scarlett.adaptive.fsrs import Card, State, format_timestamp


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


OptionLabel = Literal["a", "b", "c", "d"]


class QuestionOptions(BaseModel):
    a: str
    b: str
    c: str
    d: str


class Question(BaseModel):
    """A multiple-choice question about a song"""
    model_config = ConfigDict(extra="ignore")

    uuid: str
    question: str
    options: QuestionOptions
    audio_cid: Optional[str] = None
    correct_answer: Optional[OptionLabel] = None

    def is_correct(self, answer: str) -> bool:
        return self.correct_answer is not None and answer.strip().lower() == self.correct_answer


class CardSchema(BaseModel):
    """FSRS card as stored in progress records"""
    model_config = ConfigDict(extra="ignore")

    due: datetime
    stability: float
    difficulty: float
    elapsed_days: int = 0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    state: State = State.NEW
    last_review: Optional[datetime] = None

    @field_serializer("due", "last_review")
    def _serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return format_timestamp(value) if value is not None else None

    @field_serializer("state")
    def _serialize_state(self, value: State) -> int:
        return int(value)

    @classmethod
    def from_card(cls, card: Card) -> "CardSchema":
        return cls(
            due=card.due,
            stability=card.stability,
            difficulty=card.difficulty,
            elapsed_days=card.elapsed_days,
            scheduled_days=card.scheduled_days,
            reps=card.reps,
            lapses=card.lapses,
            state=card.state,
            last_review=card.last_review,
        )

    def to_card(self) -> Card:
        return Card.from_dict(self.model_dump(exclude_none=True))


class QuestionProgress(BaseModel):
    """Outcome of one answered question"""
    model_config = ConfigDict(extra="ignore")

    uuid: str
    correct: bool
    timestamp: int = Field(default_factory=_now_ms)  # epoch milliseconds
    fsrs: Optional[CardSchema] = None


class ProgressRecord(BaseModel):
    """One learner's session outcome for one song"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(..., alias="userId")
    song_id: str = Field(..., alias="songId")
    questions: List[QuestionProgress] = Field(default_factory=list)
    total_correct: int = Field(0, alias="totalCorrect")
    total_questions: int = Field(0, alias="totalQuestions")
    completed_at: int = Field(default_factory=_now_ms, alias="completedAt")  # epoch milliseconds

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
