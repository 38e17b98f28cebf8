"""Fragment clustering: proximity seeding, hierarchical merge, overlap resolution.

The three passes run in this order inside :func:`notegroup.pipeline.detect`.
Each takes and returns plain lists of member lists; ids, boxes and
confidences are attached afterwards.

All three passes are order-dependent by construction:

* :func:`group_by_proximity` tests candidates against the seed only, not
  transitively, so a chain of close fragments whose ends are far apart
  can end up split.
* :func:`refine_hierarchically` applies the first merge it finds and
  rescans from the start (first-merge-wins, not best-merge).
* :func:`resolve_overlaps` absorbs forward only.

Downstream consumers depend on these exact outputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Union

from ..config import GroupingConfig
from ..errors import ComputationFailure
from ..geometry import center_distance, iou, union_box
from ..models import (
    BoundingBox,
    RelationshipKind,
    SpatialRelationship,
    TextFragment,
)
from .relationships import RelationshipIndex

log = logging.getLogger(__name__)

Members = List[TextFragment]

# Relationship kinds that connect two fragments in the merge graph
# regardless of distance.
_STRUCTURAL_KINDS = frozenset(
    {
        RelationshipKind.overlapping,
        RelationshipKind.contained,
        RelationshipKind.above,
        RelationshipKind.below,
    }
)


def members_box(members: Sequence[TextFragment]) -> BoundingBox:
    """Union box of a member list."""
    return union_box(m.bounding_box for m in members)


# =============================================================================
# Proximity seeding
# =============================================================================


def group_by_proximity(
    fragments: Sequence[TextFragment], cfg: GroupingConfig
) -> List[Members]:
    """Greedy single-pass grouping by distance to a seed fragment.

    Each unprocessed fragment seeds a group and pulls in every other
    unprocessed fragment whose center lies within ``proximity_threshold``
    of the seed's center.  Groups smaller than ``min_group_size`` are
    dropped; their fragments stay processed and so end up ungrouped.
    """
    groups: List[Members] = []
    processed: set[str] = set()

    for seed in fragments:
        if seed.id in processed:
            continue
        group = [seed]
        processed.add(seed.id)

        for other in fragments:
            if other.id in processed:
                continue
            distance = center_distance(seed.bounding_box, other.bounding_box)
            if distance <= cfg.proximity_threshold:
                group.append(other)
                processed.add(other.id)

        if len(group) >= cfg.min_group_size:
            groups.append(group)

    log.debug(
        "group_by_proximity: %d fragments -> %d groups", len(fragments), len(groups)
    )
    return groups


# =============================================================================
# Hierarchical refinement
# =============================================================================


@dataclass
class Live:
    """A group slot that still owns its members."""

    members: Members


@dataclass(frozen=True)
class Absorbed:
    """A group slot whose members were merged into slot ``into``."""

    into: int


Slot = Union[Live, Absorbed]


def build_adjacency(
    relationships: Sequence[SpatialRelationship], cfg: GroupingConfig
) -> Dict[str, Dict[str, None]]:
    """Undirected fragment graph used to propose merges.

    An edge is kept when the pair is close or structurally related
    (overlapping, contained, above or below).  Node and neighbour order
    follow first appearance in *relationships*.
    """
    graph: Dict[str, Dict[str, None]] = {}
    for rel in relationships:
        if not (
            rel.distance <= cfg.proximity_threshold or rel.kind in _STRUCTURAL_KINDS
        ):
            continue
        graph.setdefault(rel.fragment_id_a, {})
        graph.setdefault(rel.fragment_id_b, {})
        graph[rel.fragment_id_a][rel.fragment_id_b] = None
        graph[rel.fragment_id_b][rel.fragment_id_a] = None
    return graph


def should_merge(
    group1: Sequence[TextFragment],
    group2: Sequence[TextFragment],
    index: RelationshipIndex,
    cfg: GroupingConfig,
) -> bool:
    """Decide whether two groups belong together.

    Any one of these is sufficient:

    a. union boxes overlap with IoU above ``overlap_threshold``;
    b. union box centers are within ``proximity_threshold``;
    c. centers are horizontally or vertically aligned (within
       ``alignment_tolerance_mult`` of *group1*'s height/width) and within
       ``alignment_distance_mult * proximity_threshold``;
    d. enough cross-group fragment pairs are close: at least
       ``relationship_ratio * min(len(group1), len(group2))``.
    """
    box1 = members_box(group1)
    box2 = members_box(group2)

    if iou(box1, box2) > cfg.overlap_threshold:
        return True

    distance = center_distance(box1, box2)
    if distance <= cfg.proximity_threshold:
        return True

    cx1, cy1 = box1.center()
    cx2, cy2 = box2.center()
    h_aligned = abs(cy1 - cy2) < box1.height * cfg.alignment_tolerance_mult
    v_aligned = abs(cx1 - cx2) < box1.width * cfg.alignment_tolerance_mult
    if (h_aligned or v_aligned) and (
        distance <= cfg.proximity_threshold * cfg.alignment_distance_mult
    ):
        return True

    close_pairs = 0
    for a in group1:
        for b in group2:
            rel = index.get(a.id, b.id)
            if rel is not None and rel.distance <= cfg.proximity_threshold:
                close_pairs += 1

    threshold = min(len(group1), len(group2)) * cfg.relationship_ratio
    return close_pairs >= threshold


def _live_members(slots: List[Slot], idx: int) -> Members:
    slot = slots[idx]
    if not isinstance(slot, Live):
        raise ComputationFailure(
            f"fragment maps to group slot {idx} which was absorbed into {slot.into}"
        )
    return slot.members


def refine_hierarchically(
    groups: Sequence[Members],
    relationships: Sequence[SpatialRelationship],
    cfg: GroupingConfig,
) -> List[Members]:
    """Merge proximity groups along the relationship graph until a fixed point.

    Each pass walks the graph's edges in discovery order.  The first edge
    joining two different live groups that :func:`should_merge` accepts
    folds the second group into the first; the scan then restarts.  The
    loop ends after a full pass with no merge.  Every merge removes one
    live group, so there are at most ``len(groups)`` passes.
    """
    slots: List[Slot] = [Live(list(g)) for g in groups]
    group_of: Dict[str, int] = {}
    for idx, group in enumerate(groups):
        for frag in group:
            group_of[frag.id] = idx

    graph = build_adjacency(relationships, cfg)
    index = RelationshipIndex(relationships)

    merges = 0
    merged = True
    while merged:
        merged = False
        for frag_id, neighbours in graph.items():
            g1 = group_of.get(frag_id)
            if g1 is None:
                continue
            for other_id in neighbours:
                g2 = group_of.get(other_id)
                if g2 is None or g1 == g2:
                    continue
                members1 = _live_members(slots, g1)
                members2 = _live_members(slots, g2)
                if not should_merge(members1, members2, index, cfg):
                    continue
                slots[g1] = Live(members1 + members2)
                slots[g2] = Absorbed(into=g1)
                for frag in members2:
                    group_of[frag.id] = g1
                merges += 1
                merged = True
                break
            if merged:
                break

    refined = [
        slot.members
        for slot in slots
        if isinstance(slot, Live)
        and slot.members
        and len(slot.members) >= cfg.min_group_size
    ]
    log.debug(
        "refine_hierarchically: %d groups, %d merges -> %d groups",
        len(groups),
        merges,
        len(refined),
    )
    return refined


# =============================================================================
# Overlap resolution
# =============================================================================


def resolve_overlaps(groups: Sequence[Members], cfg: GroupingConfig) -> List[Members]:
    """Forward-absorb groups whose union boxes overlap.

    Group *i* absorbs every later, unabsorbed group whose box has IoU
    above ``overlap_threshold`` with *i*'s current (growing) box.
    """
    resolved: List[Members] = []
    absorbed: set[int] = set()

    for i, group in enumerate(groups):
        if i in absorbed:
            continue
        current = list(group)
        absorbed.add(i)
        for j in range(i + 1, len(groups)):
            if j in absorbed:
                continue
            if iou(members_box(current), members_box(groups[j])) > cfg.overlap_threshold:
                current.extend(groups[j])
                absorbed.add(j)
        resolved.append(current)

    log.debug("resolve_overlaps: %d groups -> %d groups", len(groups), len(resolved))
    return resolved
