from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping


class ConfigValidationError(ValueError):
    """Raised when a GroupingConfig field has an invalid value."""


def _check_range(
    name: str, value: float, lo: float, hi: float, *, lo_inclusive: bool = True
) -> None:
    if lo_inclusive:
        if not (lo <= value <= hi):
            raise ConfigValidationError(f"{name}={value} out of range [{lo}, {hi}]")
    else:
        if not (lo < value <= hi):
            raise ConfigValidationError(f"{name}={value} out of range ({lo}, {hi}]")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name}={value} must be > 0")


def _check_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ConfigValidationError(f"{name}={value} must be >= 0")


# camelCase option names used by the HTTP collaborator.
OPTION_ALIASES = {
    "minGroupSize": "min_group_size",
    "overlapThreshold": "overlap_threshold",
    "proximityThreshold": "proximity_threshold",
    "useHierarchicalGrouping": "use_hierarchical_grouping",
}


@dataclass
class GroupingConfig:
    """Tunables for bounding-box grouping."""

    # ── Detection options ──────────────────────────────────────────────
    # Groups smaller than this are discarded and their fragments left ungrouped.
    min_group_size: int = 1
    # IoU above which two group boxes are considered overlapping.
    overlap_threshold: float = 0.1
    # Center-to-center distance (image units) under which fragments are "near".
    proximity_threshold: float = 50.0
    # Run the relationship-graph merge pass after proximity grouping.
    use_hierarchical_grouping: bool = True

    # ── Hierarchical merge criteria ────────────────────────────────────
    # Centers count as aligned when their offset is below this fraction
    # of the first group's height (horizontal) or width (vertical).
    alignment_tolerance_mult: float = 0.5
    # Aligned groups merge when within proximity_threshold * this.
    alignment_distance_mult: float = 1.5
    # Fraction of the smaller group that must have close cross-group pairs.
    relationship_ratio: float = 0.3

    # ── Confidence scoring ─────────────────────────────────────────────
    coverage_weight: float = 0.7
    group_confidence_weight: float = 0.3

    # ── Overlap separation ─────────────────────────────────────────────
    # Minimum gap between consecutive members to cut a vertical split.
    vertical_gap_min: float = 20.0
    # Minimum gap between consecutive members to cut a horizontal split.
    horizontal_gap_min: float = 30.0
    # Largest gaps used per split (2 cuts -> at most 3 subgroups).
    max_split_gaps: int = 2
    # Single-linkage distance for the clustering split.
    cluster_distance: float = 50.0
    # A split is applied only when its quality score exceeds this.
    min_split_quality: float = 0.5

    # ── Ingest ─────────────────────────────────────────────────────────
    # Rescale 0-100 OCR confidences to 0-1 when loading.
    normalize_confidence: bool = True

    # ── Debug overlay ──────────────────────────────────────────────────
    overlay_fragment_outline_width: int = 1
    overlay_group_outline_width: int = 3
    overlay_label_font_size: int = 12
    overlay_group_fill_alpha: int = 40

    def __post_init__(self) -> None:
        """Validate field ranges to catch misconfiguration early."""
        if isinstance(self.min_group_size, bool) or self.min_group_size < 1:
            raise ConfigValidationError(
                f"min_group_size={self.min_group_size} must be >= 1"
            )
        _check_range(
            "overlap_threshold", self.overlap_threshold, 0.0, 1.0, lo_inclusive=False
        )
        _check_positive("proximity_threshold", self.proximity_threshold)

        for name in (
            "alignment_tolerance_mult",
            "alignment_distance_mult",
            "vertical_gap_min",
            "horizontal_gap_min",
            "cluster_distance",
        ):
            _check_non_negative(name, getattr(self, name))

        for name in (
            "relationship_ratio",
            "coverage_weight",
            "group_confidence_weight",
            "min_split_quality",
        ):
            _check_range(name, getattr(self, name), 0.0, 1.0)

        if abs(self.coverage_weight + self.group_confidence_weight - 1.0) > 1e-9:
            raise ConfigValidationError(
                f"coverage_weight ({self.coverage_weight}) + "
                f"group_confidence_weight ({self.group_confidence_weight}) must sum to 1"
            )

        if self.max_split_gaps < 1:
            raise ConfigValidationError(
                f"max_split_gaps={self.max_split_gaps} must be >= 1"
            )

        for name in (
            "overlay_fragment_outline_width",
            "overlay_group_outline_width",
            "overlay_label_font_size",
        ):
            val = getattr(self, name)
            if val < 1:
                raise ConfigValidationError(f"{name}={val} must be >= 1")

        if not (0 <= self.overlay_group_fill_alpha <= 255):
            raise ConfigValidationError(
                f"overlay_group_fill_alpha={self.overlay_group_fill_alpha} "
                f"out of range [0, 255]"
            )

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None) -> "GroupingConfig":
        """Build a config from a detection-options mapping.

        Accepts the camelCase names used on the wire (``minGroupSize``,
        ``overlapThreshold``, ...) as well as field names.  Missing keys
        keep their defaults; unknown keys are rejected.
        """
        if not options:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            name = OPTION_ALIASES.get(key, key)
            if name not in known:
                raise ConfigValidationError(f"unknown option {key!r}")
            kwargs[name] = value
        return cls(**kwargs)
