"""Application service wiring content, progress storage, and the quiz engines."""

from __future__ import annotations

import logging
import random
import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import pykakasi

from .content_loader import load_item_sets
from .drill import PracticeDrill
from .errors import EmptyItemSetError
from .events import Correct, Incorrect
from .gauntlet import Gauntlet, GauntletConfig, GauntletSettings
from .models import ItemSet, StudyItem, item_id
from .progress import GauntletTotals, ProgressStore, SessionRecord
from .selection import AdaptiveSelector, PersistentWeightStore

logger = logging.getLogger(__name__)

ROMAJI_SYSTEMS = ("hepburn", "kunrei", "passport")


@dataclass(frozen=True)
class WeakItem:
    """One item ranked by how much practice it still needs."""

    item: StudyItem
    weight: float
    correct: int
    wrong: int


def normalize_answer(text: str) -> str:
    """Fold width, case, and inner whitespace so "  Shi " matches "shi"."""
    return " ".join(unicodedata.normalize("NFKC", text).casefold().split())


class DojoService:
    """Coordinates item content, persisted stats, and gauntlet/drill sessions."""

    def __init__(
        self,
        db_path: Path | str,
        item_sets: dict[str, ItemSet] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.item_sets = item_sets if item_sets is not None else load_item_sets()
        self.progress = ProgressStore(db_path)
        self.rng = rng or random.Random()
        self.selector = AdaptiveSelector(store=PersistentWeightStore(self.progress), rng=self.rng)
        self._kakasi = pykakasi.kakasi()

    def list_item_sets(self) -> list[ItemSet]:
        return list(self.item_sets.values())

    def get_item_set(self, set_id: str) -> ItemSet | None:
        return self.item_sets.get(set_id)

    def items_for(self, set_id: str, group_ids: Sequence[str] | None = None) -> list[StudyItem]:
        """Return the items of ``set_id``, optionally limited to some of its groups."""
        item_set = self.get_item_set(set_id)
        if item_set is None:
            raise KeyError(set_id)
        if not group_ids:
            return item_set.all_items()
        wanted = set(group_ids)
        unknown = wanted - {group.id for group in item_set.groups}
        if unknown:
            raise KeyError(sorted(unknown)[0])
        return [item for group in item_set.groups if group.id in wanted for item in group.items]

    def get_correct_option(self, item: object, is_reverse: bool = False) -> str:
        study_item = cast(StudyItem, item)
        return study_item.text if is_reverse else study_item.answers[0]

    def get_correct_answer(self, item: object, is_reverse: bool = False) -> str:
        study_item = cast(StudyItem, item)
        if is_reverse:
            return study_item.text
        return " / ".join(study_item.answers)

    def check_answer(self, response: str, item: object, is_reverse: bool = False) -> bool:
        study_item = cast(StudyItem, item)
        given = normalize_answer(response)
        if not given:
            return False
        accepted = [study_item.text, study_item.reading] if is_reverse else study_item.answers
        return any(given == normalize_answer(answer) for answer in accepted)

    def get_reading(self, item: object) -> str:
        return cast(StudyItem, item).reading

    def get_prompt(self, item: object, is_reverse: bool = False) -> str:
        study_item = cast(StudyItem, item)
        return study_item.answers[0] if is_reverse else study_item.text

    def _transliterate(self, text: str) -> dict[str, str]:
        parts = self._kakasi.convert(text)
        return {key: "".join(part[key] for part in parts) for key in ROMAJI_SYSTEMS + ("hira",)}

    def check_reading(self, response: str, item: object) -> bool:
        """Accept the reading typed as kana (either script) or as romaji."""
        given = normalize_answer(response)
        if not given:
            return False
        reading = normalize_answer(self.get_reading(item))
        if given == reading:
            return True
        target = self._transliterate(reading)
        if self._transliterate(given)["hira"] == target["hira"]:
            return True
        return given.replace(" ", "") in {target[system] for system in ROMAJI_SYSTEMS}

    def generate_options(
        self, item: object, pool: Sequence[object], count: int = 4, is_reverse: bool = False
    ) -> list[str]:
        """Return the correct option plus up to ``count - 1`` distinct distractors from ``pool``."""
        correct = self.get_correct_option(item, is_reverse)
        own_id = item_id(item)
        distractors: list[str] = []
        for other in pool:
            if item_id(other) == own_id:
                continue
            option = self.get_correct_option(other, is_reverse)
            if option != correct and option not in distractors:
                distractors.append(option)
        picked = self.rng.sample(distractors, min(len(distractors), max(0, count - 1)))
        return [correct, *picked]

    def new_gauntlet(
        self,
        set_id: str,
        group_ids: Sequence[str] | None = None,
        settings: GauntletSettings | None = None,
    ) -> Gauntlet:
        """Build a gauntlet over the chosen groups that stores its result and trains shared weights."""
        items = self.items_for(set_id, group_ids)
        if not items:
            raise EmptyItemSetError(f"Item set '{set_id}' has no items in the chosen groups.")
        item_set = self.item_sets[set_id]
        config = GauntletConfig(
            items=items,
            dojo_type=item_set.dojo_type,
            generate_options=self.generate_options,
            get_correct_option=self.get_correct_option,
            check_answer=self.check_answer,
            get_correct_answer=self.get_correct_answer,
            selected_sets=tuple(group_ids) if group_ids else (set_id,),
        )
        gauntlet = Gauntlet(config, settings=settings, rng=self.rng, persist=self.progress.save_session)
        logger.debug("Built gauntlet over %d items from %s", len(items), ", ".join(config.selected_sets))
        gauntlet.on(Correct, lambda sender, event: self.record_practice_answer(event.item_id, True))
        gauntlet.on(Incorrect, lambda sender, event: self.record_practice_answer(event.item_id, False))
        return gauntlet

    def new_drill(
        self, set_id: str, group_ids: Sequence[str] | None = None, is_reverse: bool = False
    ) -> PracticeDrill:
        """Build a drill; sets whose items have separate readings also quiz the reading."""
        items = self.items_for(set_id, group_ids)
        has_readings = any(item.reading != item.text for item in items)
        return PracticeDrill(
            items,
            self.selector,
            check_answer=self.check_answer,
            get_correct_answer=self.get_correct_answer,
            is_reverse=is_reverse,
            check_reading=self.check_reading if has_readings else None,
            get_reading=self.get_reading,
            get_prompt=self.get_prompt,
        )

    def record_practice_answer(self, item: object, was_correct: bool) -> float:
        """Feed one answer from any mode into the shared selector weights."""
        return self.selector.update_character_weight(item, was_correct)

    def history(self, dojo_type: str | None = None, limit: int = 20) -> list[SessionRecord]:
        return self.progress.list_sessions(dojo_type=dojo_type, limit=limit)

    def totals(self, dojo_type: str | None = None) -> GauntletTotals:
        return self.progress.gauntlet_totals(dojo_type)

    def weakest_items(self, set_id: str, limit: int = 5) -> list[WeakItem]:
        """Rank the set's items by selector weight, then by gauntlet mistakes."""
        item_set = self.get_item_set(set_id)
        if item_set is None:
            raise KeyError(set_id)
        tallies = self.progress.item_totals(item_set.dojo_type)
        ranked = []
        for item in item_set.all_items():
            correct, wrong = tallies.get(item.id, (0, 0))
            ranked.append(WeakItem(item=item, weight=self.selector.weight_of(item), correct=correct, wrong=wrong))
        ranked.sort(key=lambda weak: (-weak.weight, -weak.wrong, weak.item.id))
        return ranked[:limit]

    def close(self) -> None:
        """Close underlying resources."""
        self.progress.close()
