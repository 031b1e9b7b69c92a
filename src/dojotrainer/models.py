"""Core content models for kana and vocabulary drills."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

IDENTITY_KEYS = ("kana", "kanji_char", "word", "id")


@dataclass(frozen=True)
class StudyItem:
    """One character or word the learner is drilled on."""

    id: str
    set_id: str
    group_id: str
    text: str
    answers: list[str]
    reading: str
    meanings: list[str]


@dataclass(frozen=True)
class ItemGroup:
    """Ordered group of items, e.g. one kana row."""

    id: str
    title: str
    order: int
    items: list[StudyItem]


@dataclass(frozen=True)
class ItemSet:
    """Top-level bundle of groups for one dojo."""

    id: str
    title: str
    dojo_type: str
    description: str
    content_version: int
    groups: list[ItemGroup]

    def all_items(self) -> list[StudyItem]:
        return [item for group in self.groups for item in group.items]


def item_id(item: object) -> str:
    """Return the stable identity string used for repeat avoidance and stats."""
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        for key in IDENTITY_KEYS:
            if key in item:
                return str(item[key])
        return str(item)
    for key in IDENTITY_KEYS:
        value = getattr(item, key, None)
        if value is not None:
            return str(value)
    return str(item)
