from .progress import (
    CardSchema,
    ProgressRecord,
    Question,
    QuestionOptions,
    QuestionProgress,
)
from .study import StudySession

__all__ = [
    "CardSchema",
    "ProgressRecord",
    "Question",
    "QuestionOptions",
    "QuestionProgress",
    "StudySession",
]
