"""Tests for notegroup.geometry — area, IoU, containment, distances, union box."""

import math

import numpy as np
import pytest

from notegroup.geometry import (
    area,
    center_distance,
    contains,
    iou,
    overlap_area,
    pairwise_center_distances,
    point_in_box,
    union_box,
)
from notegroup.models import ZERO_BOX, BoundingBox


def _b(left, top, width, height) -> BoundingBox:
    return BoundingBox(left, top, width, height)


class TestArea:
    def test_basic(self):
        assert area(_b(0, 0, 10, 20)) == 200

    def test_zero_size(self):
        assert area(_b(5, 5, 0, 10)) == 0


class TestOverlapArea:
    def test_partial(self):
        assert overlap_area(_b(0, 0, 10, 10), _b(5, 5, 10, 10)) == 25

    def test_touching_edges_is_zero(self):
        assert overlap_area(_b(0, 0, 10, 10), _b(10, 0, 10, 10)) == 0

    def test_disjoint(self):
        assert overlap_area(_b(0, 0, 10, 10), _b(50, 50, 10, 10)) == 0


class TestIoU:
    def test_identical_is_one(self):
        box = _b(3, 4, 17, 9)
        assert iou(box, box) == 1.0

    def test_disjoint_is_zero(self):
        assert iou(_b(0, 0, 10, 10), _b(100, 100, 10, 10)) == 0.0

    def test_symmetric(self):
        a = _b(0, 0, 10, 10)
        b = _b(5, 2, 12, 6)
        assert iou(a, b) == iou(b, a)

    def test_half_overlap(self):
        # inter 50, union 150
        assert iou(_b(0, 0, 10, 10), _b(5, 0, 10, 10)) == pytest.approx(50 / 150)

    def test_degenerate_boxes(self):
        assert iou(ZERO_BOX, ZERO_BOX) == 0.0


class TestContains:
    def test_outer_contains_inner(self):
        assert contains(_b(0, 0, 100, 100), _b(10, 10, 5, 5))

    def test_symmetric_direction(self):
        assert contains(_b(10, 10, 5, 5), _b(0, 0, 100, 100))

    def test_reflexive_for_equal_geometry(self):
        box = _b(1, 2, 3, 4)
        assert contains(box, BoundingBox(1, 2, 3, 4))

    def test_partial_overlap_not_contained(self):
        assert not contains(_b(0, 0, 10, 10), _b(5, 5, 10, 10))


class TestCenterDistance:
    def test_pythagorean(self):
        assert center_distance(_b(0, 0, 2, 2), _b(3, 4, 2, 2)) == 5.0

    def test_same_center(self):
        assert center_distance(_b(0, 0, 10, 10), _b(4, 4, 2, 2)) == 0.0


class TestPointInBox:
    def test_inside(self):
        assert point_in_box(50, 50, _b(0, 0, 100, 100))

    def test_on_edge_is_inside(self):
        assert point_in_box(100, 0, _b(0, 0, 100, 100))

    def test_outside(self):
        assert not point_in_box(200, 200, _b(0, 0, 100, 100))


class TestUnionBox:
    def test_empty_is_zero_box(self):
        assert union_box([]) == ZERO_BOX

    def test_two_boxes(self):
        u = union_box([_b(10, 10, 50, 20), _b(10, 35, 50, 20)])
        assert u == BoundingBox(10, 10, 50, 45)

    def test_accepts_generator(self):
        u = union_box(b for b in [_b(0, 0, 1, 1), _b(5, 5, 1, 1)])
        assert (u.right, u.bottom) == (6, 6)


class TestPairwiseCenterDistances:
    def test_matches_scalar(self):
        boxes = [_b(0, 0, 2, 2), _b(3, 4, 2, 2), _b(10, 0, 4, 4)]
        dist = pairwise_center_distances(boxes)
        assert dist.shape == (3, 3)
        for i in range(3):
            for j in range(3):
                assert math.isclose(dist[i, j], center_distance(boxes[i], boxes[j]))

    def test_empty(self):
        assert pairwise_center_distances([]).shape == (0, 0)

    def test_diagonal_is_zero(self):
        dist = pairwise_center_distances([_b(0, 0, 5, 5), _b(9, 9, 5, 5)])
        assert np.all(np.diag(dist) == 0)
