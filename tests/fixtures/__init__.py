"""
Shared test fixtures and factories.

Reusable test data generators that can be imported into any test file or conftest.py.
"""

from .questions import create_mock_question, create_question_pool, QuestionFactory
from .progress import (
    create_card_data,
    create_progress_entry,
    create_progress_record,
    iso,
)

__all__ = [
    # Questions
    "create_mock_question",
    "create_question_pool",
    "QuestionFactory",
    # Progress
    "create_card_data",
    "create_progress_entry",
    "create_progress_record",
    "iso",
]
