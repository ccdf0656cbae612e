"""
Question Selector
Builds the question list for the next quiz session from the learner's latest progress

Decision table (evaluated in order):
1. No previous progress          -> first N questions (bootstrap)
2. Due questions >= N            -> first N due questions
3. No due and no new questions   -> first N questions (fallback)
4. Otherwise                     -> due questions, then new questions, topped up
                                    with already-seen questions if still short

"Due" means the question's FSRS card has due <= now. "New" means the question
never appears in the previous progress record. Order always follows the
question pool, never due dates. A uuid repeated in the pool counts once
(first occurrence).
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set

from scarlett.adaptive.fsrs.fsrs_algorithm import Card

logger = logging.getLogger(__name__)

SESSION_SIZE = 20


class SelectionBranch(str, Enum):
    """Which row of the decision table produced a selection"""
    BOOTSTRAP = "bootstrap"
    DUE_ONLY = "due_only"
    DUE_AND_NEW = "due_and_new"
    FALLBACK = "fallback"


@dataclass
class SelectionResult:
    """Selected questions plus how they were chosen"""
    questions: List[Any]
    branch: SelectionBranch
    due_count: int
    new_count: int


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from either a mapping or an attribute-style object"""
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _uuid_of(obj: Any) -> Optional[str]:
    value = _field(obj, "uuid")
    return value if isinstance(value, str) and value else None


def _card_of(entry: Any) -> Optional[Card]:
    """FSRS card stored on a progress entry, or None if absent or unreadable"""
    raw = _field(entry, "fsrs")
    if raw is None:
        return None
    if isinstance(raw, Card):
        return raw
    if hasattr(raw, "to_card"):
        raw = raw.to_card()
        return raw if isinstance(raw, Card) else None
    if isinstance(raw, Mapping):
        try:
            return Card.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Ignoring unreadable card on entry {_uuid_of(entry)}: {e}")
            return None
    return None


class QuestionSelector:
    """
    Due-first question selection over FSRS cards

    Holds no state besides the session size, so instances are interchangeable
    and safe to share between concurrent sessions.
    """

    def __init__(self, session_size: int = SESSION_SIZE):
        if session_size < 1:
            raise ValueError("session_size must be positive")
        self.session_size = session_size

    def select_questions(
        self,
        all_questions: Sequence[Any],
        previous: Optional[Any] = None,
        now: Optional[datetime] = None,
    ) -> List[Any]:
        """
        Pick the questions for the next session

        Args:
            all_questions: Question pool in presentation order (models or mappings with a uuid)
            previous: Latest progress record for this learner and song, or None
            now: Reference time for due checks (default: now, UTC)

        Returns:
            Up to session_size questions, taken from all_questions
        """
        return self.plan(all_questions, previous, now).questions

    def plan(
        self,
        all_questions: Sequence[Any],
        previous: Optional[Any] = None,
        now: Optional[datetime] = None,
    ) -> SelectionResult:
        """Same as select_questions, but also reports the branch taken"""
        all_questions = self._unique(all_questions or [])
        limit = self.session_size

        if previous is None:
            logger.debug(f"No previous progress, returning first {limit} of {len(all_questions)} questions")
            return self._first_n(all_questions, SelectionBranch.BOOTSTRAP)

        now = now or datetime.now(timezone.utc)
        entries = self._entries(previous)
        due = self.due_uuids(entries, now)
        seen = self.seen_uuids(entries)

        due_questions = [q for q in all_questions if _uuid_of(q) in due]
        logger.debug(f"Found {len(due_questions)} due questions among {len(entries)} progress entries")

        if len(due_questions) >= limit:
            return SelectionResult(
                questions=due_questions[:limit],
                branch=SelectionBranch.DUE_ONLY,
                due_count=limit,
                new_count=0,
            )

        new_questions = [
            q for q in all_questions
            if _uuid_of(q) is not None and _uuid_of(q) not in seen
        ]

        if not due_questions and not new_questions:
            logger.debug(f"No due and no new questions, returning first {limit} questions")
            return self._first_n(all_questions, SelectionBranch.FALLBACK)

        selected = due_questions + new_questions[:limit - len(due_questions)]
        new_count = len(selected) - len(due_questions)

        if len(selected) < limit:
            # Pool has more questions than due + new; fill with seen, not-due ones
            chosen = {id(q) for q in selected}
            filler = [q for q in all_questions if id(q) not in chosen]
            selected.extend(filler[:limit - len(selected)])

        logger.debug(
            f"Combining {len(due_questions)} due questions with {new_count} new questions "
            f"({len(selected)} total)"
        )
        return SelectionResult(
            questions=selected,
            branch=SelectionBranch.DUE_AND_NEW,
            due_count=len(due_questions),
            new_count=new_count,
        )

    def due_uuids(self, entries: Sequence[Any], now: datetime) -> Set[str]:
        """
        Uuids whose most recent card is due at now

        Entries without a uuid or a readable card are never due.
        """
        latest: Dict[str, Card] = {}
        for entry in entries:
            uuid = _uuid_of(entry)
            card = _card_of(entry)
            if uuid is None or card is None:
                continue
            latest[uuid] = card

        return {uuid for uuid, card in latest.items() if card.is_due(now)}

    def seen_uuids(self, entries: Sequence[Any]) -> Set[str]:
        return {uuid for uuid in (_uuid_of(entry) for entry in entries) if uuid is not None}

    def _first_n(self, all_questions: List[Any], branch: SelectionBranch) -> SelectionResult:
        return SelectionResult(
            questions=all_questions[:self.session_size],
            branch=branch,
            due_count=0,
            new_count=0,
        )

    @staticmethod
    def _unique(all_questions: Sequence[Any]) -> List[Any]:
        """Pool with repeated uuids dropped, first occurrence kept"""
        unique = []
        uuids: Set[str] = set()
        for question in all_questions:
            uuid = _uuid_of(question)
            if uuid is not None:
                if uuid in uuids:
                    continue
                uuids.add(uuid)
            unique.append(question)
        if len(unique) < len(all_questions):
            logger.warning(f"Dropped {len(all_questions) - len(unique)} questions with repeated uuids")
        return unique

    @staticmethod
    def _entries(previous: Any) -> List[Any]:
        entries = _field(previous, "questions")
        if not isinstance(entries, (list, tuple)):
            logger.warning("Previous progress has no readable question list; treating it as empty")
            return []
        return list(entries)
