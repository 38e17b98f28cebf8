from __future__ import annotations

from statistics import mean
from typing import Sequence

from ..config import GroupingConfig
from ..models import Group, TextFragment


def group_confidence(members: Sequence[TextFragment]) -> float:
    """Mean member confidence (0 for an empty group)."""
    if not members:
        return 0.0
    return float(mean(m.confidence for m in members))


def overall_confidence(
    groups: Sequence[Group],
    ungrouped: Sequence[TextFragment],
    cfg: GroupingConfig | None = None,
) -> float:
    """Blend of fragment coverage and mean group confidence.

    ``coverage_weight * grouped/total + group_confidence_weight * mean(group conf)``,
    0 when there are no fragments at all.
    """
    coverage_w = cfg.coverage_weight if cfg else 0.7
    group_w = cfg.group_confidence_weight if cfg else 0.3

    grouped = sum(len(g.members) for g in groups)
    total = grouped + len(ungrouped)
    if total == 0:
        return 0.0

    ratio = grouped / total
    avg_group = float(mean(g.confidence for g in groups)) if groups else 0.0
    return ratio * coverage_w + avg_group * group_w
