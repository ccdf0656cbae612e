"""
Adaptive scheduling engine

- FSRS (Free Spaced Repetition Scheduler) - per-question memory model
- Question selection - due-first session builder on top of FSRS cards
"""

from .fsrs import (
    Card,
    FSRSAlgorithm,
    FSRSParameters,
    Rating,
    State,
)

from .selection import QuestionSelector

__all__ = [
    "Card",
    "FSRSAlgorithm",
    "FSRSParameters",
    "Rating",
    "State",
    "QuestionSelector",
]
