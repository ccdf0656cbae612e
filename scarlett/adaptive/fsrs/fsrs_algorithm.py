"""
FSRS (Free Spaced Repetition Scheduler) Algorithm
Based on the paper: "A Stochastic Shortest Path Algorithm for Optimizing Spaced Repetition Scheduling"

FSRS-4.5 with the default weights of the reference scheduler. Each question a
learner answers gets a Card tracking memory stability and difficulty; every
answer moves the card through New -> Learning -> Review (-> Relearning) and
sets the next due date.
"""
import logging
import math
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DECAY = -0.5
FACTOR = 19 / 81

DEFAULT_WEIGHTS = (
    0.4072,   # w[0]: Initial stability for AGAIN
    1.1829,   # w[1]: Initial stability for HARD
    3.1262,   # w[2]: Initial stability for GOOD
    15.4722,  # w[3]: Initial stability for EASY
    7.2102,   # w[4]: Initial difficulty for GOOD
    0.5316,   # w[5]: Initial difficulty slope per rating step
    1.0651,   # w[6]: Difficulty change per rating step
    0.0234,   # w[7]: Difficulty mean reversion
    1.616,    # w[8]: Recall stability growth
    0.1544,   # w[9]: Recall stability saturation
    1.0824,   # w[10]: Recall stability retrievability gain
    1.9813,   # w[11]: Forget stability base
    0.0953,   # w[12]: Forget stability difficulty exponent
    0.2975,   # w[13]: Forget stability exponent
    2.2042,   # w[14]: Forget stability retrievability gain
    0.2407,   # w[15]: HARD penalty
    2.9466,   # w[16]: EASY bonus
)

# (start, end, factor) spans used to widen the fuzz window for long intervals
FUZZ_RANGES = (
    (2.5, 7.0, 0.15),
    (7.0, 20.0, 0.1),
    (20.0, math.inf, 0.05),
)


class Rating(IntEnum):
    """Review rating options"""
    AGAIN = 1  # Completely forgot
    HARD = 2   # Difficult to recall
    GOOD = 3   # Recalled correctly
    EASY = 4   # Recalled easily


class State(IntEnum):
    """Card lifecycle stage (integer values are the wire format)"""
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass a datetime through"""
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, str):
        return _as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    raise TypeError(f"Expected ISO-8601 string or datetime, got {type(value).__name__}")


def format_timestamp(value: datetime) -> str:
    return _as_utc(value).isoformat().replace("+00:00", "Z")


def _round(value: float) -> int:
    # half-up, not banker's rounding
    return int(math.floor(value + 0.5))


@dataclass
class Card:
    """
    Per-question memory state
    """
    due: datetime
    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    state: State = State.NEW
    last_review: Optional[datetime] = None

    @classmethod
    def new(cls, now: Optional[datetime] = None) -> "Card":
        """Fresh, never-reviewed card due immediately"""
        return cls(due=_as_utc(now or datetime.now(timezone.utc)))

    def is_due(self, now: Optional[datetime] = None) -> bool:
        return _as_utc(self.due) <= _as_utc(now or datetime.now(timezone.utc))

    def to_dict(self) -> Dict:
        """Convert to the wire dictionary"""
        data = {
            "due": format_timestamp(self.due),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "elapsed_days": self.elapsed_days,
            "scheduled_days": self.scheduled_days,
            "reps": self.reps,
            "lapses": self.lapses,
            "state": int(self.state),
        }
        if self.last_review is not None:
            data["last_review"] = format_timestamp(self.last_review)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Card":
        """
        Build a card from its wire dictionary

        Raises KeyError, TypeError or ValueError on malformed input.
        """
        last_review = data.get("last_review")
        return cls(
            due=parse_timestamp(data["due"]),
            stability=float(data.get("stability", 0.0)),
            difficulty=float(data.get("difficulty", 0.0)),
            elapsed_days=int(data.get("elapsed_days", 0)),
            scheduled_days=int(data.get("scheduled_days", 0)),
            reps=int(data.get("reps", 0)),
            lapses=int(data.get("lapses", 0)),
            state=State(int(data.get("state", State.NEW))),
            last_review=parse_timestamp(last_review) if last_review else None,
        )


@dataclass
class ReviewLog:
    """What a single review did to a card"""
    rating: Rating
    state: State  # state before the review
    due: datetime  # due date before the review
    stability: float
    difficulty: float
    elapsed_days: int
    scheduled_days: int
    review: datetime

    def to_dict(self) -> Dict:
        return {
            "rating": int(self.rating),
            "state": int(self.state),
            "due": format_timestamp(self.due),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "elapsed_days": self.elapsed_days,
            "scheduled_days": self.scheduled_days,
            "review": format_timestamp(self.review),
        }


@dataclass
class SchedulingInfo:
    card: Card
    review_log: ReviewLog


@dataclass
class FSRSParameters:
    """
    FSRS model parameters

    Retention 0.9 and a 100-year cap are what the quiz runs with.
    """
    w: List[float] = field(default_factory=lambda: list(DEFAULT_WEIGHTS))
    request_retention: float = 0.9
    maximum_interval: int = 36500
    enable_fuzz: bool = True

    def __post_init__(self):
        if len(self.w) != len(DEFAULT_WEIGHTS):
            raise ValueError(f"FSRS needs {len(DEFAULT_WEIGHTS)} weights, got {len(self.w)}")
        if not 0 < self.request_retention <= 1:
            raise ValueError("request_retention must be in (0, 1]")
        if self.maximum_interval < 1:
            raise ValueError("maximum_interval must be at least 1 day")


def _default_rng_factory(seed: str) -> random.Random:
    return random.Random(seed)


class FSRSAlgorithm:
    """
    FSRS Algorithm Implementation

    Stateless apart from its parameters: any two instances built with the same
    parameters schedule identically.

    Core formulas:
    - Retrievability R(t,S) = (1 + FACTOR * t/S)^DECAY
    - Next stability S' depends on rating, difficulty and retrievability
    - Difficulty D moves with each rating and reverts towards w[4]
    """

    def __init__(
        self,
        parameters: Optional[FSRSParameters] = None,
        rng_factory: Optional[Callable[[str], random.Random]] = None,
    ):
        """
        Args:
            parameters: Model parameters (defaults: retention 0.9, cap 36500 days, fuzz on)
            rng_factory: Builds the random source used for interval fuzz from a
                seed string; the seed is derived from the review time and card
                state, so the default factory is deterministic per input
        """
        self.params = parameters or FSRSParameters()
        self.w = self.params.w
        self.rng_factory = rng_factory or _default_rng_factory
        self.interval_modifier = (
            math.pow(self.params.request_retention, 1 / DECAY) - 1
        ) / FACTOR

    def get_parameters(self) -> Dict:
        return {
            "enable_fuzz": self.params.enable_fuzz,
            "maximum_interval": self.params.maximum_interval,
            "request_retention": self.params.request_retention,
        }

    # ------------------------------------------------------------------
    # Answer -> rating
    # ------------------------------------------------------------------

    def rate(self, correct: bool) -> Rating:
        """
        Multiple choice has no partial credit: correct -> GOOD, incorrect -> AGAIN
        """
        return Rating.GOOD if correct else Rating.AGAIN

    # ------------------------------------------------------------------
    # Memory model
    # ------------------------------------------------------------------

    def forgetting_curve(self, elapsed_days: float, stability: float) -> float:
        """
        Probability of recall after elapsed_days

        R(t,S) = (1 + FACTOR * t/S)^DECAY, which is exactly 0.9 at t == S.
        """
        if stability <= 0:
            return 0.0
        return math.pow(1 + FACTOR * elapsed_days / stability, DECAY)

    def get_retrievability(self, card: Card, now: Optional[datetime] = None) -> float:
        """Current recall probability of a card (0 for cards never reviewed)"""
        if card.state == State.NEW or card.last_review is None:
            return 0.0
        now = _as_utc(now or datetime.now(timezone.utc))
        elapsed_days = max(0, (now - _as_utc(card.last_review)).days)
        return self.forgetting_curve(elapsed_days, card.stability)

    def init_stability(self, rating: Rating) -> float:
        return max(self.w[rating - 1], 0.1)

    def init_difficulty(self, rating: Rating) -> float:
        difficulty = self.w[4] - (rating - 3) * self.w[5]
        return self._constrain_difficulty(difficulty)

    def next_difficulty(self, difficulty: float, rating: Rating) -> float:
        next_d = difficulty - self.w[6] * (rating - 3)
        return self._constrain_difficulty(self.mean_reversion(self.w[4], next_d))

    def mean_reversion(self, initial: float, current: float) -> float:
        return self.w[7] * initial + (1 - self.w[7]) * current

    def next_recall_stability(
        self,
        difficulty: float,
        stability: float,
        retrievability: float,
        rating: Rating,
    ) -> float:
        """Stability after a successful recall"""
        stability = max(stability, 0.1)
        hard_penalty = self.w[15] if rating == Rating.HARD else 1
        easy_bonus = self.w[16] if rating == Rating.EASY else 1

        new_stability = stability * (
            1
            + math.exp(self.w[8])
            * (11 - difficulty)
            * math.pow(stability, -self.w[9])
            * (math.exp((1 - retrievability) * self.w[10]) - 1)
            * hard_penalty
            * easy_bonus
        )
        return max(0.1, new_stability)

    def next_forget_stability(
        self,
        difficulty: float,
        stability: float,
        retrievability: float,
    ) -> float:
        """Stability after a lapse"""
        stability = max(stability, 0.1)
        new_stability = (
            self.w[11]
            * math.pow(difficulty, -self.w[12])
            * (math.pow(stability + 1, self.w[13]) - 1)
            * math.exp((1 - retrievability) * self.w[14])
        )
        return max(0.1, new_stability)

    def next_interval(self, stability: float, elapsed_days: int = 0, seed: str = "") -> int:
        """
        Days until retrievability falls to the retention target, fuzzed and capped

        Formula: I = S / FACTOR * (R_req^(1/DECAY) - 1)
        """
        interval = stability * self.interval_modifier
        interval = self.apply_fuzz(interval, elapsed_days, seed)
        return min(max(interval, 1), self.params.maximum_interval)

    def get_fuzz_range(self, interval: float, elapsed_days: int):
        maximum_interval = self.params.maximum_interval
        delta = 1.0
        for start, end, factor in FUZZ_RANGES:
            delta += factor * max(min(interval, end) - start, 0.0)

        interval = min(interval, maximum_interval)
        min_ivl = max(2, _round(interval - delta))
        max_ivl = min(_round(interval + delta), maximum_interval)
        if interval > elapsed_days:
            min_ivl = max(min_ivl, elapsed_days + 1)
        min_ivl = min(min_ivl, max_ivl)
        return min_ivl, max_ivl

    def apply_fuzz(self, interval: float, elapsed_days: int, seed: str) -> int:
        """
        Spread intervals of >= 2.5 days over a small window so that cards
        learned together do not all come due on the same day
        """
        if not self.params.enable_fuzz or interval < 2.5:
            return _round(interval)

        fuzz_factor = self.rng_factory(seed).random()
        min_ivl, max_ivl = self.get_fuzz_range(interval, elapsed_days)
        return int(math.floor(fuzz_factor * (max_ivl - min_ivl + 1) + min_ivl))

    @staticmethod
    def _constrain_difficulty(difficulty: float) -> float:
        return min(max(difficulty, 1.0), 10.0)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def repeat(self, card: Card, now: Optional[datetime] = None) -> Dict[Rating, SchedulingInfo]:
        """
        Schedule a review of card at now for every possible rating

        The input card is left untouched.

        Returns:
            Mapping of rating to the resulting card and its review log
        """
        now = _as_utc(now or datetime.now(timezone.utc))
        previous = card
        card = replace(card)

        if card.state == State.NEW or card.last_review is None:
            card.elapsed_days = 0
        else:
            card.elapsed_days = max(0, (now - _as_utc(card.last_review)).days)
        card.last_review = now
        card.reps += 1

        seed = f"{int(now.timestamp() * 1000)}_{card.reps}_{card.difficulty * card.stability}"
        outcomes = {rating: replace(card) for rating in Rating}

        if previous.state == State.NEW:
            self._schedule_new(outcomes, card, now, seed)
        elif previous.state in (State.LEARNING, State.RELEARNING):
            self._schedule_learning(outcomes, card, now, seed)
        else:
            self._schedule_review(outcomes, card, now, seed)

        return {
            rating: SchedulingInfo(
                card=outcome,
                review_log=ReviewLog(
                    rating=rating,
                    state=previous.state,
                    due=previous.due,
                    stability=previous.stability,
                    difficulty=previous.difficulty,
                    elapsed_days=card.elapsed_days,
                    scheduled_days=previous.scheduled_days,
                    review=now,
                ),
            )
            for rating, outcome in outcomes.items()
        }

    def _schedule_new(self, outcomes: Dict[Rating, Card], card: Card, now: datetime, seed: str):
        for rating, outcome in outcomes.items():
            outcome.stability = self.init_stability(rating)
            outcome.difficulty = self.init_difficulty(rating)

        for rating, minutes in ((Rating.AGAIN, 1), (Rating.HARD, 5), (Rating.GOOD, 10)):
            outcome = outcomes[rating]
            outcome.scheduled_days = 0
            outcome.due = now + timedelta(minutes=minutes)
            outcome.state = State.LEARNING

        easy = outcomes[Rating.EASY]
        easy_interval = self.next_interval(easy.stability, card.elapsed_days, seed)
        easy.scheduled_days = easy_interval
        easy.due = now + timedelta(days=easy_interval)
        easy.state = State.REVIEW

    def _schedule_learning(self, outcomes: Dict[Rating, Card], card: Card, now: datetime, seed: str):
        if card.stability <= 0:
            # Placeholder card with no memory state yet: seed it like a first answer
            for rating, outcome in outcomes.items():
                outcome.stability = self.init_stability(rating)
                outcome.difficulty = self.init_difficulty(rating)

        # Learning steps keep stability and difficulty; only graduation schedules days
        good_interval = self.next_interval(outcomes[Rating.GOOD].stability, card.elapsed_days, seed)
        easy_interval = max(
            self.next_interval(outcomes[Rating.EASY].stability, card.elapsed_days, seed),
            good_interval + 1,
        )
        easy_interval = min(easy_interval, self.params.maximum_interval)

        for rating, minutes in ((Rating.AGAIN, 5), (Rating.HARD, 10)):
            outcome = outcomes[rating]
            outcome.scheduled_days = 0
            outcome.due = now + timedelta(minutes=minutes)
            outcome.state = card.state

        for rating, interval in ((Rating.GOOD, good_interval), (Rating.EASY, easy_interval)):
            outcome = outcomes[rating]
            outcome.scheduled_days = interval
            outcome.due = now + timedelta(days=interval)
            outcome.state = State.REVIEW

    def _schedule_review(self, outcomes: Dict[Rating, Card], card: Card, now: datetime, seed: str):
        last_d = card.difficulty
        last_s = card.stability
        retrievability = self.forgetting_curve(card.elapsed_days, last_s)

        for rating, outcome in outcomes.items():
            outcome.difficulty = self.next_difficulty(last_d, rating)
            if rating == Rating.AGAIN:
                outcome.stability = self.next_forget_stability(
                    outcome.difficulty, last_s, retrievability
                )
            else:
                outcome.stability = self.next_recall_stability(
                    outcome.difficulty, last_s, retrievability, rating
                )

        maximum_interval = self.params.maximum_interval
        hard_interval = self.next_interval(outcomes[Rating.HARD].stability, card.elapsed_days, seed)
        good_interval = self.next_interval(outcomes[Rating.GOOD].stability, card.elapsed_days, seed)
        hard_interval = min(hard_interval, good_interval)
        good_interval = min(max(good_interval, hard_interval + 1), maximum_interval)
        easy_interval = min(
            max(
                self.next_interval(outcomes[Rating.EASY].stability, card.elapsed_days, seed),
                good_interval + 1,
            ),
            maximum_interval,
        )

        again = outcomes[Rating.AGAIN]
        again.scheduled_days = 0
        again.due = now + timedelta(minutes=5)
        again.state = State.RELEARNING
        again.lapses += 1

        for rating, interval in (
            (Rating.HARD, hard_interval),
            (Rating.GOOD, good_interval),
            (Rating.EASY, easy_interval),
        ):
            outcome = outcomes[rating]
            outcome.scheduled_days = interval
            outcome.due = now + timedelta(days=interval)
            outcome.state = State.REVIEW

    def advance(
        self,
        card: Optional[Card],
        rating: Rating,
        now: Optional[datetime] = None,
    ) -> Card:
        """
        Apply one answer to a card

        Args:
            card: Current card, or None for a question never answered before
            rating: Review rating (any of the four)
            now: Time of review (default: now, UTC)

        Returns:
            A new card; the input is not modified
        """
        now = _as_utc(now or datetime.now(timezone.utc))
        rating = Rating(rating)
        if card is None:
            card = Card.new(now)

        updated = self.repeat(card, now)[rating].card
        logger.debug(
            f"Card {card.state.name} -> {updated.state.name} on {rating.name}: "
            f"S={updated.stability:.4f} D={updated.difficulty:.4f} "
            f"scheduled_days={updated.scheduled_days}"
        )
        return updated

    def preview(self, card: Optional[Card], now: Optional[datetime] = None) -> Dict[Rating, int]:
        """
        Scheduled days per rating without committing anything
        Useful for showing learners how each answer would play out
        """
        now = _as_utc(now or datetime.now(timezone.utc))
        outcomes = self.repeat(card or Card.new(now), now)
        return {rating: info.card.scheduled_days for rating, info in outcomes.items()}
