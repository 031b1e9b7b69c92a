from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from dojotrainer.models import ItemGroup, ItemSet, StudyItem  # noqa: E402


def _tmp_path_fixture() -> Iterator[Path]:
    """Per-test scratch directory under ``.tmp_pytest/`` in the checkout.

    Replaces pytest's builtin ``tmp_path`` so databases written by the tests
    stay inside the project tree.
    """
    base = ROOT / ".tmp_pytest"
    base.mkdir(parents=True, exist_ok=True)
    path = base / str(uuid4())
    path.mkdir(parents=True, exist_ok=False)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        try:
            next(base.iterdir())
        except StopIteration:
            base.rmdir()
        except FileNotFoundError:
            pass


tmp_path = pytest.fixture(name="tmp_path")(_tmp_path_fixture)


def make_item(text: str, answers: list[str], set_id: str = "mini", group_id: str = "mini-a") -> StudyItem:
    return StudyItem(
        id=text,
        set_id=set_id,
        group_id=group_id,
        text=text,
        answers=answers,
        reading=text,
        meanings=[],
    )


@pytest.fixture
def mini_sets() -> dict[str, ItemSet]:
    """Two-group kana set small enough to play through in a test."""
    first = ItemGroup(
        id="mini-a",
        title="a row",
        order=1,
        items=[make_item("あ", ["a"]), make_item("い", ["i"]), make_item("う", ["u"])],
    )
    second = ItemGroup(
        id="mini-k",
        title="ka row",
        order=2,
        items=[make_item("か", ["ka"], group_id="mini-k"), make_item("し", ["shi", "si"], group_id="mini-k")],
    )
    item_set = ItemSet(
        id="mini",
        title="Mini Kana",
        dojo_type="kana",
        description="test set",
        content_version=1,
        groups=[first, second],
    )
    return {item_set.id: item_set}
