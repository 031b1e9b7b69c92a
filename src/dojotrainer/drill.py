"""Endless practice drill driven by the adaptive selector."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from .errors import EmptyItemSetError
from .gauntlet import ItemTally
from .selection import AdaptiveSelector

logger = logging.getLogger(__name__)


class QuizType(StrEnum):
    """What the current drill question asks for."""

    MEANING = "meaning"
    READING = "reading"


@dataclass(frozen=True)
class DrillFeedback:
    """Outcome of one drill answer."""

    correct: bool
    expected: str
    weight: float
    score: int


@dataclass(frozen=True)
class DrillSummary:
    answered: int
    correct: int
    wrong: int
    skipped: int
    score: int
    accuracy: float
    item_stats: dict[str, ItemTally]


class PracticeDrill:
    """Keep asking weighted picks from ``items`` until the caller stops.

    A wrong answer keeps the same item on screen; a correct answer or a skip
    draws the next one, never the item just shown when there is a choice.

    With ``check_reading`` supplied, questions alternate between the meaning
    and the reading of each new item, starting with the meaning. In reverse
    mode the meaning question shows the answer and expects the item itself.
    """

    def __init__(
        self,
        items: Sequence[object],
        selector: AdaptiveSelector,
        check_answer: Callable[[str, object, bool], bool],
        get_correct_answer: Callable[[object, bool], str] | None = None,
        *,
        is_reverse: bool = False,
        check_reading: Callable[[str, object], bool] | None = None,
        get_reading: Callable[[object], str] | None = None,
        get_prompt: Callable[[object, bool], str] | None = None,
    ) -> None:
        if not items:
            raise EmptyItemSetError("Cannot start a practice drill without items.")
        self.items = list(items)
        self.selector = selector
        self.is_reverse = is_reverse
        self._check_answer = check_answer
        self._get_correct_answer = get_correct_answer
        self._check_reading = check_reading
        self._get_reading = get_reading
        self._get_prompt = get_prompt
        self.quiz_type = QuizType.MEANING
        self.score = 0
        self.correct = 0
        self.wrong = 0
        self.skipped = 0
        self.item_stats: dict[str, ItemTally] = {}
        self.current = self._draw(exclude=None)

    @property
    def alternates(self) -> bool:
        return self._check_reading is not None

    def _draw(self, exclude: object | None) -> object:
        item = self.selector.select_weighted_character(self.items, exclude=exclude)
        self.selector.mark_character_seen(item)
        return item

    def _advance(self) -> None:
        self.current = self._draw(exclude=self.current)
        if self.alternates:
            self.quiz_type = QuizType.READING if self.quiz_type == QuizType.MEANING else QuizType.MEANING

    def prompt(self) -> str:
        """Text shown for the current question."""
        if self._get_prompt is None:
            return str(self.current)
        return self._get_prompt(self.current, self.is_reverse)

    def expected_answer(self) -> str:
        if self.quiz_type == QuizType.READING and self._get_reading is not None:
            return self._get_reading(self.current)
        if self._get_correct_answer is None:
            return ""
        return self._get_correct_answer(self.current, self.is_reverse)

    def is_correct_response(self, response: str) -> bool:
        if self.quiz_type == QuizType.READING and self._check_reading is not None:
            return bool(self._check_reading(response, self.current))
        return bool(self._check_answer(response, self.current, self.is_reverse))

    def answer(self, response: str) -> DrillFeedback:
        if not response.strip():
            raise ValueError("Answer is blank.")
        item = self.current
        quiz_type = self.quiz_type
        key = self.selector.identity(item)
        correct = self.is_correct_response(response)
        expected = self.expected_answer()
        weight = self.selector.update_character_weight(item, correct)

        previous = self.item_stats.get(key, ItemTally())
        if correct:
            self.correct += 1
            self.score += 1
            self.item_stats[key] = ItemTally(correct=previous.correct + 1, wrong=previous.wrong)
            self._advance()
        else:
            self.wrong += 1
            self.score = max(0, self.score - 1)
            self.item_stats[key] = ItemTally(correct=previous.correct, wrong=previous.wrong + 1)
        logger.debug("Drill %s answer for %s: correct=%s weight=%.3f", quiz_type, key, correct, weight)
        return DrillFeedback(correct=correct, expected=expected, weight=weight, score=self.score)

    def skip(self) -> object:
        self.skipped += 1
        self._advance()
        return self.current

    def summary(self) -> DrillSummary:
        answered = self.correct + self.wrong
        return DrillSummary(
            answered=answered,
            correct=self.correct,
            wrong=self.wrong,
            skipped=self.skipped,
            score=self.score,
            accuracy=self.correct / answered if answered else 0.0,
            item_stats=dict(self.item_stats),
        )
