"""Adaptive weighted selection of study items.

Every item id carries a positive weight. Correct answers shrink it toward a
floor, mistakes grow it toward a ceiling, and draws are proportional to
weight, so items the learner struggles with come up more often without any
item ever becoming unselectable or dominating every draw.

One selector is meant to live for the whole process and be shared by every
drill, so weight learned in one session informs the next.
"""

from __future__ import annotations

import bisect
import itertools
import logging
import random
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Protocol, TypeVar

from .config import SelectorParams
from .models import item_id

if TYPE_CHECKING:
    from .progress import ProgressStore

T = TypeVar("T")

logger = logging.getLogger(__name__)


class WeightStore(Protocol):
    """Storage for per-item weights."""

    def get(self, key: str) -> float | None: ...

    def set(self, key: str, weight: float) -> None: ...


class InMemoryWeightStore:
    """Process-lifetime weight storage."""

    def __init__(self) -> None:
        self._weights: dict[str, float] = {}

    def get(self, key: str) -> float | None:
        return self._weights.get(key)

    def set(self, key: str, weight: float) -> None:
        self._weights[key] = weight

    def __len__(self) -> int:
        return len(self._weights)


class PersistentWeightStore:
    """Write-through cache over the progress database's ``item_weights`` table."""

    def __init__(self, progress: ProgressStore) -> None:
        self._progress = progress
        self._cache: dict[str, float] = progress.all_weights()
        logger.debug("Loaded %d persisted item weights", len(self._cache))

    def get(self, key: str) -> float | None:
        return self._cache.get(key)

    def set(self, key: str, weight: float) -> None:
        self._cache[key] = weight
        self._progress.set_weight(key, weight)


class AdaptiveSelector:
    """Pick items with probability proportional to their learned weight."""

    def __init__(
        self,
        store: WeightStore | None = None,
        params: SelectorParams | None = None,
        rng: random.Random | None = None,
        identity: Callable[[object], str] = item_id,
    ) -> None:
        self.store: WeightStore = store if store is not None else InMemoryWeightStore()
        self.params = params or SelectorParams()
        self.rng = rng or random.Random()
        self.identity = identity

    def weight_of(self, item: object) -> float:
        """Return the item's weight, or the neutral default if it was never seen."""
        weight = self.store.get(self.identity(item))
        return self.params.default_weight if weight is None else weight

    def select_weighted_character(self, candidates: Sequence[T], exclude: T | None = None) -> T:
        """Draw one candidate, biased toward higher weight.

        With ``exclude`` set and more than one candidate, draws matching the
        excluded identity are redrawn a bounded number of times and then
        accepted rather than looping forever.
        """
        if not candidates:
            raise ValueError("Cannot select from an empty candidate list.")
        if len(candidates) == 1:
            return candidates[0]

        cumulative = list(itertools.accumulate(self.weight_of(candidate) for candidate in candidates))
        total = cumulative[-1]
        excluded_id = self.identity(exclude) if exclude is not None else None

        choice = self._draw(candidates, cumulative, total)
        attempts = 0
        while excluded_id is not None and self.identity(choice) == excluded_id:
            if attempts >= self.params.exclude_retries:
                break
            choice = self._draw(candidates, cumulative, total)
            attempts += 1
        return choice

    def _draw(self, candidates: Sequence[T], cumulative: list[float], total: float) -> T:
        point = self.rng.random() * total
        index = bisect.bisect_right(cumulative, point)
        return candidates[min(index, len(candidates) - 1)]

    def mark_character_seen(self, item: object) -> None:
        """Ensure a weight entry exists for the item."""
        key = self.identity(item)
        if self.store.get(key) is None:
            self.store.set(key, self.params.default_weight)

    def update_character_weight(self, item: object, was_correct: bool) -> float:
        """Decay the weight on a correct answer, grow it on a mistake; return the new weight."""
        current = self.weight_of(item)
        if was_correct:
            updated = max(self.params.min_weight, current * self.params.correct_factor)
        else:
            updated = min(self.params.max_weight, current * self.params.wrong_factor)
        self.store.set(self.identity(item), updated)
        return updated

    def selection_probability(self, item: object, candidates: Sequence[object]) -> float:
        """Return the chance ``item`` wins one unrestricted draw over ``candidates``."""
        key = self.identity(item)
        total = sum(self.weight_of(candidate) for candidate in candidates)
        if total <= 0:
            return 0.0
        matching = sum(self.weight_of(candidate) for candidate in candidates if self.identity(candidate) == key)
        return matching / total
