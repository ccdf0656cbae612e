"""
FSRS Spaced Repetition System

Includes:
- FSRSAlgorithm: FSRS-4.5 scheduling (rate, advance, repeat, preview)
- Card: Per-question memory state with wire (de)serialisation
- Rating / State: Review rating and card lifecycle enums
"""
from .fsrs_algorithm import (
    Card,
    FSRSAlgorithm,
    FSRSParameters,
    Rating,
    ReviewLog,
    SchedulingInfo,
    State,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    "Card",
    "FSRSAlgorithm",
    "FSRSParameters",
    "Rating",
    "ReviewLog",
    "SchedulingInfo",
    "State",
    "format_timestamp",
    "parse_timestamp",
]
