"""Shared test fixtures for the grouping engine."""

import pytest

from notegroup.config import GroupingConfig
from notegroup.geometry import union_box
from notegroup.models import BoundingBox, FragmentKind, Group, GroupOrigin, TextFragment
from notegroup.store import InMemoryGroupStore

# ── Helpers ────────────────────────────────────────────────────────────


def make_fragment(
    frag_id: str,
    left: float,
    top: float,
    width: float,
    height: float,
    text: str = "",
    confidence: float = 0.9,
    kind: FragmentKind = FragmentKind.LINE,
) -> TextFragment:
    """Create a TextFragment with sane defaults."""
    return TextFragment(
        id=frag_id,
        text=text or frag_id,
        confidence=confidence,
        bounding_box=BoundingBox(left, top, width, height),
        kind=kind,
    )


def make_group(
    group_id: str,
    members: list[TextFragment],
    origin: GroupOrigin = GroupOrigin.auto,
    confidence: float = 0.9,
    box: BoundingBox | None = None,
) -> Group:
    """Build a Group whose box is the union of *members* unless *box* is given."""
    return Group(
        id=group_id,
        bounding_box=box or union_box(m.bounding_box for m in members),
        members=list(members),
        confidence=confidence,
        origin=origin,
    )


def stacked(
    gaps: list[float],
    left: float = 10.0,
    top: float = 10.0,
    width: float = 50.0,
    height: float = 20.0,
    prefix: str = "f",
) -> list[TextFragment]:
    """Fragments stacked vertically with the given gaps between them."""
    frags = [make_fragment(f"{prefix}0", left, top, width, height)]
    y = top + height
    for i, gap in enumerate(gaps, start=1):
        y += gap
        frags.append(make_fragment(f"{prefix}{i}", left, y, width, height))
        y += height
    return frags


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def default_cfg() -> GroupingConfig:
    """Return a default GroupingConfig."""
    return GroupingConfig()


@pytest.fixture
def store() -> InMemoryGroupStore:
    """Return an empty in-memory group store."""
    return InMemoryGroupStore()


@pytest.fixture
def two_notes() -> list[TextFragment]:
    """Two sticky notes far apart, each made of three close lines.

    Note A near (10, 10); note B near (500, 400).
    """
    return [
        make_fragment("a1", 10, 10, 80, 15, "Buy milk"),
        make_fragment("a2", 10, 30, 80, 15, "and eggs"),
        make_fragment("a3", 10, 50, 60, 15, "today"),
        make_fragment("b1", 500, 400, 90, 15, "Call Sam"),
        make_fragment("b2", 500, 420, 70, 15, "re: demo"),
        make_fragment("b3", 500, 440, 50, 15, "Friday"),
    ]


@pytest.fixture
def sparse_fragments() -> list[TextFragment]:
    """Fragments scattered far apart on a diagonal; nothing is near anything."""
    return [
        make_fragment(f"s{i}", i * 300.0, i * 300.0, 40, 10, confidence=0.5 + i * 0.1)
        for i in range(4)
    ]
