"""Load item sets from bundled JSON resources."""

from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any

from .models import ItemGroup, ItemSet, StudyItem

CONTENT_PACKAGE = "dojotrainer.content.sets"

logger = logging.getLogger(__name__)


def _clean_strings(values: Any) -> list[str]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, list):
        return []
    return [str(value).strip() for value in values if str(value).strip()]


def _item_from_dict(set_id: str, group_id: str, raw: dict[str, Any]) -> StudyItem:
    """Build an item; kana rows only need ``text`` + ``answers``, vocab rows may rely on ``meanings``."""
    text = str(raw.get("text", "")).strip()
    if not text:
        raise ValueError(f"Item in group '{group_id}' has no text.")

    meanings = _clean_strings(raw.get("meanings", []))
    answers = _clean_strings(raw.get("answers", [])) or meanings
    if not answers:
        raise ValueError(f"Item '{raw.get('id', text)}' has no valid answers.")

    return StudyItem(
        id=str(raw.get("id") or text),
        set_id=set_id,
        group_id=group_id,
        text=text,
        answers=answers,
        reading=str(raw.get("reading") or text),
        meanings=meanings,
    )


def _group_from_dict(set_id: str, raw: dict[str, Any]) -> ItemGroup:
    group_id = str(raw["id"])
    items = [_item_from_dict(set_id, group_id, item) for item in raw.get("items", [])]
    return ItemGroup(id=group_id, title=str(raw.get("title", group_id)), order=int(raw.get("order", 0)), items=items)


def _set_from_dict(raw: dict[str, Any]) -> ItemSet:
    set_id = str(raw["id"])
    groups = [_group_from_dict(set_id, group) for group in raw.get("groups", [])]
    groups.sort(key=lambda group: group.order)
    item_set = ItemSet(
        id=set_id,
        title=str(raw.get("title", set_id)),
        dojo_type=str(raw.get("dojo_type", "kana")),
        description=str(raw.get("description", "")),
        content_version=int(raw.get("content_version", 1)),
        groups=groups,
    )
    if not item_set.all_items():
        raise ValueError(f"Item set '{set_id}' contains no items.")
    return item_set


def load_item_sets() -> dict[str, ItemSet]:
    """Load bundled item sets."""
    item_sets: dict[str, ItemSet] = {}
    for entry in sorted(resources.files(CONTENT_PACKAGE).iterdir(), key=lambda entry: entry.name):
        if entry.name.endswith(".json"):
            _add_set(item_sets, json.loads(entry.read_text(encoding="utf-8-sig")))
    _validate_unique_item_ids(item_sets)
    logger.debug("Loaded %d bundled item sets", len(item_sets))
    return item_sets


def load_item_sets_from_dir(path: Path) -> dict[str, ItemSet]:
    """Load item sets from a directory of JSON files."""
    item_sets: dict[str, ItemSet] = {}
    for file_path in sorted(path.glob("*.json")):
        _add_set(item_sets, json.loads(file_path.read_text(encoding="utf-8-sig")))
    _validate_unique_item_ids(item_sets)
    return item_sets


def _add_set(item_sets: dict[str, ItemSet], raw: dict[str, Any]) -> None:
    item_set = _set_from_dict(raw)
    if item_set.id in item_sets:
        raise ValueError(f"Duplicate item set id: {item_set.id}")
    item_sets[item_set.id] = item_set


def _validate_unique_item_ids(item_sets: dict[str, ItemSet]) -> None:
    """Item ids key weights and per-item stats, so they must be unique across sets."""
    seen: dict[str, str] = {}
    for item_set in item_sets.values():
        group_ids: set[str] = set()
        for group in item_set.groups:
            if group.id in group_ids:
                raise ValueError(f"Duplicate group id: {group.id} (in {item_set.id})")
            group_ids.add(group.id)
            for item in group.items:
                previous = seen.get(item.id)
                if previous is not None:
                    raise ValueError(f"Duplicate item id: {item.id} (in {previous} and {item_set.id})")
                seen[item.id] = item_set.id
