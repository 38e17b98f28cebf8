"""Automatic grouping stages: relationships, clustering, confidence."""

from .clustering import (
    group_by_proximity,
    refine_hierarchically,
    resolve_overlaps,
    should_merge,
)
from .confidence import group_confidence, overall_confidence
from .relationships import RelationshipIndex, analyze_relationships, classify_pair

__all__ = [
    "RelationshipIndex",
    "analyze_relationships",
    "classify_pair",
    "group_by_proximity",
    "group_confidence",
    "overall_confidence",
    "refine_hierarchically",
    "resolve_overlaps",
    "should_merge",
]
