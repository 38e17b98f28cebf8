"""Bounding-box math shared by every grouping stage.

All functions are pure and accept :class:`~notegroup.models.BoundingBox`
values.  Inputs are validated upstream to have non-negative dimensions,
so none of these raise.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

import numpy as np

from .models import ZERO_BOX, BoundingBox


def area(box: BoundingBox) -> float:
    """Area of *box*, clamped to zero."""
    return max(0.0, box.width) * max(0.0, box.height)


def overlap_area(a: BoundingBox, b: BoundingBox) -> float:
    """Area of the intersection of *a* and *b* (0 when they only touch)."""
    left = max(a.left, b.left)
    top = max(a.top, b.top)
    right = min(a.right, b.right)
    bottom = min(a.bottom, b.bottom)
    if left < right and top < bottom:
        return (right - left) * (bottom - top)
    return 0.0


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection-over-union of two axis-aligned boxes."""
    inter = overlap_area(a, b)
    if inter == 0:
        return 0.0
    union = area(a) + area(b) - inter
    return inter / union if union > 0 else 0.0


def contains(a: BoundingBox, b: BoundingBox) -> bool:
    """True if either box fully encloses the other (edges inclusive)."""

    def _encloses(outer: BoundingBox, inner: BoundingBox) -> bool:
        return (
            inner.left >= outer.left
            and inner.top >= outer.top
            and inner.right <= outer.right
            and inner.bottom <= outer.bottom
        )

    return _encloses(a, b) or _encloses(b, a)


def center_distance(a: BoundingBox, b: BoundingBox) -> float:
    """Euclidean distance between box centers."""
    ax, ay = a.center()
    bx, by = b.center()
    return math.sqrt((bx - ax) ** 2 + (by - ay) ** 2)


def point_in_box(x: float, y: float, box: BoundingBox) -> bool:
    """Closed point-in-rectangle test."""
    return box.left <= x <= box.right and box.top <= y <= box.bottom


def union_box(boxes: Iterable[BoundingBox]) -> BoundingBox:
    """Smallest box enclosing *boxes*; the zero box when there are none."""
    boxes = list(boxes)
    if not boxes:
        return ZERO_BOX
    left = min(b.left for b in boxes)
    top = min(b.top for b in boxes)
    right = max(b.right for b in boxes)
    bottom = max(b.bottom for b in boxes)
    return BoundingBox(left=left, top=top, width=right - left, height=bottom - top)


def pairwise_center_distances(boxes: Sequence[BoundingBox]) -> np.ndarray:
    """Return the ``(n, n)`` matrix of center-to-center distances."""
    if not boxes:
        return np.zeros((0, 0), dtype=float)
    centers = np.array([b.center() for b in boxes], dtype=float)
    diff = centers[:, None, :] - centers[None, :, :]
    return np.sqrt((diff**2).sum(axis=-1))
