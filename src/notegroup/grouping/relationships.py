"""Pairwise spatial relationships between the fragments of one image."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List, Optional, Sequence

from ..geometry import center_distance, contains, iou
from ..models import RelationshipKind, SpatialRelationship, TextFragment

log = logging.getLogger(__name__)


def classify_pair(a: TextFragment, b: TextFragment) -> SpatialRelationship:
    """Classify where *b* sits relative to *a*.

    Overlap wins over containment, which wins over direction.  Direction
    follows the dominant center offset; ties go to left/right.
    """
    box_a = a.bounding_box
    box_b = b.bounding_box
    distance = center_distance(box_a, box_b)

    if iou(box_a, box_b) > 0:
        kind = RelationshipKind.overlapping
    elif contains(box_a, box_b):
        kind = RelationshipKind.contained
    else:
        ax, ay = box_a.center()
        bx, by = box_b.center()
        if abs(by - ay) > abs(bx - ax):
            kind = RelationshipKind.below if by > ay else RelationshipKind.above
        else:
            kind = RelationshipKind.right if bx > ax else RelationshipKind.left

    return SpatialRelationship(
        fragment_id_a=a.id, fragment_id_b=b.id, distance=distance, kind=kind
    )


def analyze_relationships(
    fragments: Sequence[TextFragment],
) -> List[SpatialRelationship]:
    """Return one relationship per unordered pair, in input-pair order.

    Nothing is filtered here; every pair is kept regardless of distance.
    """
    relationships: List[SpatialRelationship] = []
    for i in range(len(fragments)):
        for j in range(i + 1, len(fragments)):
            relationships.append(classify_pair(fragments[i], fragments[j]))
    log.debug(
        "analyze_relationships: %d fragments -> %d pairs",
        len(fragments),
        len(relationships),
    )
    return relationships


class RelationshipIndex:
    """Unordered-pair lookup over a relationship list.

    When a pair occurs more than once the first record wins.
    """

    def __init__(self, relationships: Sequence[SpatialRelationship]) -> None:
        self._by_pair: Dict[FrozenSet[str], SpatialRelationship] = {}
        for rel in relationships:
            key = frozenset((rel.fragment_id_a, rel.fragment_id_b))
            self._by_pair.setdefault(key, rel)

    def __len__(self) -> int:
        return len(self._by_pair)

    def get(self, id_a: str, id_b: str) -> Optional[SpatialRelationship]:
        """Relationship recorded between two fragment ids, if any."""
        return self._by_pair.get(frozenset((id_a, id_b)))
