"""Re-splitting of groups that wrongly merged several notes.

For every multi-member group three candidate splits are produced:

* **vertical**: cut the top-sorted members at the largest significant
  vertical gaps;
* **horizontal**: the same along x;
* **cluster**: single-linkage components over member center distances.

Each candidate is scored with :func:`evaluate_quality` and the strictly
best one replaces the group when it clears ``min_split_quality``.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import GroupingConfig
from .geometry import center_distance, pairwise_center_distances, union_box
from .models import Group, SeparationResult, TextFragment

log = logging.getLogger(__name__)

Split = List[Group]


def _subgroup(parent: Group, suffix: str, members: Sequence[TextFragment]) -> Group:
    return dataclasses.replace(
        parent,
        id=f"{parent.id}-{suffix}",
        members=list(members),
        bounding_box=union_box(m.bounding_box for m in members),
    )


def _split_on_gaps(
    group: Group,
    tag: str,
    sort_key: Callable[[TextFragment], float],
    gap_fn: Callable[[TextFragment, TextFragment], float],
    min_gap: float,
    max_cuts: int,
) -> Split:
    """Sort members, then cut at the largest gaps above *min_gap*."""
    if len(group.members) <= 1:
        return [group]

    ordered = sorted(group.members, key=sort_key)
    gaps: List[Tuple[int, float]] = [
        (i, gap_fn(ordered[i - 1], ordered[i])) for i in range(1, len(ordered))
    ]
    significant = [g for g in sorted(gaps, key=lambda g: -g[1]) if g[1] > min_gap]
    if not significant:
        return [group]

    cuts = sorted(i for i, _ in significant[:max_cuts])
    parts: Split = []
    start = 0
    for cut in cuts + [len(ordered)]:
        parts.append(_subgroup(group, f"{tag}-{len(parts) + 1}", ordered[start:cut]))
        start = cut
    return parts


def split_vertically(group: Group, cfg: GroupingConfig | None = None) -> Split:
    """Split at vertical gaps (``top`` minus previous ``bottom``) above ``vertical_gap_min``."""
    cfg = cfg or GroupingConfig()
    return _split_on_gaps(
        group,
        "v",
        sort_key=lambda f: f.bounding_box.top,
        gap_fn=lambda prev, cur: cur.bounding_box.top - prev.bounding_box.bottom,
        min_gap=cfg.vertical_gap_min,
        max_cuts=cfg.max_split_gaps,
    )


def split_horizontally(group: Group, cfg: GroupingConfig | None = None) -> Split:
    """Split at horizontal gaps (``left`` minus previous ``right``) above ``horizontal_gap_min``."""
    cfg = cfg or GroupingConfig()
    return _split_on_gaps(
        group,
        "h",
        sort_key=lambda f: f.bounding_box.left,
        gap_fn=lambda prev, cur: cur.bounding_box.left - prev.bounding_box.right,
        min_gap=cfg.horizontal_gap_min,
        max_cuts=cfg.max_split_gaps,
    )


def split_by_clustering(group: Group, cfg: GroupingConfig | None = None) -> Split:
    """Single-linkage clustering of members at ``cluster_distance``.

    Pairs are merged in ascending distance order; each cluster is labelled
    by its lowest member index.  Groups of two or fewer members, and
    groups that collapse to one cluster, are returned unchanged.
    """
    cfg = cfg or GroupingConfig()
    members = group.members
    n = len(members)
    if n <= 2:
        return [group]

    dist = pairwise_center_distances([m.bounding_box for m in members])
    rows, cols = np.triu_indices(n, k=1)
    pair_dist = dist[rows, cols]
    order = np.argsort(pair_dist, kind="stable")

    labels = list(range(n))
    for k in order:
        if pair_dist[k] > cfg.cluster_distance:
            break
        a, b = labels[rows[k]], labels[cols[k]]
        if a == b:
            continue
        target, source = min(a, b), max(a, b)
        labels = [target if lbl == source else lbl for lbl in labels]

    clusters: Dict[int, List[TextFragment]] = {}
    for idx, label in enumerate(labels):
        clusters.setdefault(label, []).append(members[idx])

    if len(clusters) <= 1:
        return [group]
    return [_subgroup(group, f"c-{label}", frags) for label, frags in clusters.items()]


def evaluate_quality(split: Sequence[Group]) -> float:
    """Score a split in ``[0, 1]``; higher means better separated.

    ``external / (internal + external)`` where *internal* is the mean
    member-to-member center distance pooled over all subgroups and
    *external* the mean distance between subgroup box centers.  Returns 0
    for fewer than two subgroups or when either mean is 0.
    """
    if len(split) <= 1:
        return 0.0

    internal_total = 0.0
    internal_pairs = 0
    for sub in split:
        n = len(sub.members)
        if n <= 1:
            continue
        dist = pairwise_center_distances([m.bounding_box for m in sub.members])
        internal_total += float(dist[np.triu_indices(n, k=1)].sum())
        internal_pairs += n * (n - 1) // 2
    avg_internal = internal_total / internal_pairs if internal_pairs else 0.0

    external_total = 0.0
    external_pairs = 0
    for i in range(len(split)):
        for j in range(i + 1, len(split)):
            external_total += center_distance(
                split[i].bounding_box, split[j].bounding_box
            )
            external_pairs += 1
    avg_external = external_total / external_pairs if external_pairs else 0.0

    if avg_internal == 0 or avg_external == 0:
        return 0.0
    return min(1.0, max(0.0, avg_external / (avg_internal + avg_external)))


def select_split(
    group: Group,
    candidates: Sequence[Split],
    scores: Sequence[float],
    min_quality: float = 0.5,
) -> Split:
    """Pick the winning candidate, or ``[group]`` when none qualifies.

    A candidate wins only with a score strictly above every other
    candidate and above 0; ties keep the original.  The winner is applied
    only when its score exceeds *min_quality* and it has more than one
    subgroup.
    """
    best: Split = [group]
    best_score = 0.0
    for i, score in enumerate(scores):
        others = [s for j, s in enumerate(scores) if j != i]
        if score > best_score and all(score > s for s in others):
            best = list(candidates[i])
            best_score = score
            break

    if best_score > min_quality and len(best) > 1:
        return best
    return [group]


def _resolve_members(group: Group, by_id: Dict[str, TextFragment]) -> Group:
    """Swap members for the caller's fragments with the same id."""
    if not by_id:
        return group
    members = [by_id.get(m.id, m) for m in group.members]
    return dataclasses.replace(group, members=members)


def separate_group(
    group: Group,
    cfg: GroupingConfig | None = None,
    scorer: Callable[[Sequence[Group]], float] = evaluate_quality,
) -> Split:
    """Try the three splits on one group and return the result."""
    cfg = cfg or GroupingConfig()
    if len(group.members) <= 1:
        return [group]

    candidates = [
        split_vertically(group, cfg),
        split_horizontally(group, cfg),
        split_by_clustering(group, cfg),
    ]
    scores = [scorer(c) for c in candidates]
    chosen = select_split(group, candidates, scores, cfg.min_split_quality)
    log.debug(
        "separate_group %s: scores v=%.3f h=%.3f c=%.3f -> %d part(s)",
        group.id,
        scores[0],
        scores[1],
        scores[2],
        len(chosen),
    )
    return chosen


def separate_overlapping(
    groups: Sequence[Group],
    fragments: Optional[Sequence[TextFragment]] = None,
    cfg: GroupingConfig | None = None,
) -> SeparationResult:
    """Split each flagged group where a clean separation exists.

    *fragments* is the image's full fragment list, used to recover member
    geometry for groups that carry stale or partial member records.
    """
    cfg = cfg or GroupingConfig()
    by_id = {f.id: f for f in fragments} if fragments else {}

    result: List[Group] = []
    for group in groups:
        result.extend(separate_group(_resolve_members(group, by_id), cfg))

    log.debug("separate_overlapping: %d groups -> %d groups", len(groups), len(result))
    return SeparationResult(
        original_count=len(groups), result_count=len(result), groups=result
    )
