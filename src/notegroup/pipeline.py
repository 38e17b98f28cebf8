"""Detection pipeline: the grouping stages for one image, in order.

    relationships → proximity → hierarchy → overlap → scoring

Each stage leaves a :class:`StageResult` on the returned
:class:`~notegroup.models.DetectionResult`.  When a stage raises
:class:`~notegroup.errors.ComputationFailure` the records collected so far,
the failed one included, travel on the exception as ``exc.stages``.

:func:`detect` performs no I/O and keeps no state between calls, so
independent images may be processed concurrently.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .config import GroupingConfig
from .errors import ComputationFailure
from .grouping.clustering import (
    Members,
    group_by_proximity,
    members_box,
    refine_hierarchically,
    resolve_overlaps,
)
from .grouping.confidence import group_confidence, overall_confidence
from .grouping.relationships import analyze_relationships
from .models import (
    ZERO_BOX,
    DetectionResult,
    Group,
    GroupOrigin,
    OcrResult,
    TextFragment,
)

logger = logging.getLogger(__name__)

STAGE_ORDER: List[str] = [
    "relationships",
    "proximity",
    "hierarchy",
    "overlap",
    "scoring",
]

# Stages that only config or empty input can switch off.
_OPTIONAL_STAGES = frozenset({"hierarchy"})


class SkipReason(str, Enum):
    """Why a stage did not run."""

    disabled_by_config = "disabled_by_config"
    no_fragments = "no_fragments"
    not_applicable = "not_applicable"


@dataclass
class StageResult:
    """What happened to one stage of :func:`detect`."""

    stage: str
    enabled: bool = True
    ran: bool = False
    status: str = "skipped"  # "success" | "skipped" | "failed"
    skip_reason: Optional[str] = None
    duration_ms: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    # "<ExceptionType>: <message>" for a failed stage
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible dict; unset optional fields are left out."""
        return {
            k: v
            for k, v in dataclasses.asdict(self).items()
            if v is not None and v != {}
        }


def gate(
    stage: str,
    cfg: GroupingConfig,
    inputs: Dict[str, Any] | None = None,
) -> tuple[bool, Optional[str]]:
    """Return ``(should_run, skip_reason)`` for *stage*."""
    if stage not in STAGE_ORDER:
        return False, SkipReason.not_applicable.value
    if stage not in _OPTIONAL_STAGES:
        return True, None
    if not cfg.use_hierarchical_grouping:
        return False, SkipReason.disabled_by_config.value
    if (inputs or {}).get("groups", 1) == 0:
        return False, SkipReason.no_fragments.value
    return True, None


@contextmanager
def run_stage(
    stage: str,
    cfg: GroupingConfig,
    stages: Dict[str, StageResult],
    inputs: Dict[str, Any] | None = None,
) -> Iterator[StageResult]:
    """Gate and time one stage, registering its record in *stages* up front.

    The body should check ``sr.ran``.  An exception marks the record
    failed and propagates.
    """
    should_run, skip_reason = gate(stage, cfg, inputs)
    sr = StageResult(
        stage=stage,
        enabled=not (stage in _OPTIONAL_STAGES and not cfg.use_hierarchical_grouping),
        ran=should_run,
        skip_reason=skip_reason,
    )
    stages[stage] = sr
    if not should_run:
        yield sr
        return

    t0 = time.perf_counter()
    try:
        yield sr
    except Exception as exc:
        sr.status = "failed"
        sr.error = f"{type(exc).__name__}: {exc}"
        raise
    else:
        sr.status = "success"
    finally:
        sr.duration_ms = int((time.perf_counter() - t0) * 1000)


# ── Group construction ─────────────────────────────────────────────────


def build_groups(member_lists: Sequence[Members]) -> List[Group]:
    """Attach ids, union boxes and confidences to clustered member lists."""
    groups: List[Group] = []
    for index, members in enumerate(member_lists, start=1):
        box = members_box(members)
        if members and box == ZERO_BOX:
            raise ComputationFailure(
                f"group-{index} has {len(members)} member(s) but an empty union box"
            )
        groups.append(
            Group(
                id=f"group-{index}",
                bounding_box=box,
                members=list(members),
                confidence=group_confidence(members),
                origin=GroupOrigin.auto,
            )
        )
    return groups


# ── Public API ─────────────────────────────────────────────────────────


def detect(
    fragments: Sequence[TextFragment],
    cfg: GroupingConfig | None = None,
) -> DetectionResult:
    """Group OCR fragments into logical units.

    Every fragment ends up either in exactly one returned group or in
    ``ungrouped_fragments`` (listed in input order).  The result is
    deterministic for a given ``(fragments, cfg)``.
    """
    if cfg is None:
        cfg = GroupingConfig()

    t0 = time.perf_counter()
    result = DetectionResult()
    stages = result.stages
    fragments = list(fragments)

    try:
        with run_stage("relationships", cfg, stages) as sr:
            relationships = analyze_relationships(fragments)
            sr.counts = {
                "fragments": len(fragments),
                "relationships": len(relationships),
            }

        with run_stage("proximity", cfg, stages) as sr:
            member_lists = group_by_proximity(fragments, cfg)
            sr.counts = {"groups": len(member_lists)}

        with run_stage("hierarchy", cfg, stages, {"groups": len(member_lists)}) as sr:
            if sr.ran:
                member_lists = refine_hierarchically(member_lists, relationships, cfg)
                sr.counts = {"groups": len(member_lists)}

        with run_stage("overlap", cfg, stages) as sr:
            member_lists = resolve_overlaps(member_lists, cfg)
            sr.counts = {"groups": len(member_lists)}

        with run_stage("scoring", cfg, stages) as sr:
            groups = build_groups(member_lists)
            grouped_ids = {m.id for g in groups for m in g.members}
            ungrouped = [f for f in fragments if f.id not in grouped_ids]
            confidence = overall_confidence(groups, ungrouped, cfg)
            sr.counts = {
                "groups": len(groups),
                "grouped": len(grouped_ids),
                "ungrouped": len(ungrouped),
            }
    except ComputationFailure as exc:
        exc.stages = dict(stages)
        raise

    result.groups = groups
    result.ungrouped_fragments = ungrouped
    result.confidence = confidence
    result.processing_time_ms = int((time.perf_counter() - t0) * 1000)

    logger.debug(
        "detect: %d fragments -> %d groups, %d ungrouped, confidence=%.3f",
        len(fragments),
        len(groups),
        len(ungrouped),
        confidence,
    )
    return result


def detect_ocr(ocr: OcrResult, cfg: GroupingConfig | None = None) -> DetectionResult:
    """Run :func:`detect` on the fragments of an OCR result."""
    return detect(ocr.fragments, cfg)
