"""Tests for notegroup.pipeline — detect(), gating, and stage results."""

import pytest
from conftest import make_fragment, stacked

from notegroup.config import GroupingConfig
from notegroup.errors import ComputationFailure
from notegroup.models import GroupOrigin, OcrResult
from notegroup.pipeline import (
    STAGE_ORDER,
    SkipReason,
    StageResult,
    build_groups,
    detect,
    detect_ocr,
    gate,
    run_stage,
)


def _partition(result):
    return [g.member_ids() for g in result.groups], [f.id for f in result.ungrouped_fragments]


# ── gate() ─────────────────────────────────────────────────────────────


class TestGate:
    @pytest.mark.parametrize("stage", ["relationships", "proximity", "overlap", "scoring"])
    def test_core_stages_always_run(self, stage, default_cfg):
        assert gate(stage, default_cfg) == (True, None)

    def test_hierarchy_disabled(self):
        cfg = GroupingConfig(use_hierarchical_grouping=False)
        assert gate("hierarchy", cfg) == (False, SkipReason.disabled_by_config.value)

    def test_hierarchy_without_groups(self, default_cfg):
        assert gate("hierarchy", default_cfg, {"groups": 0}) == (
            False,
            SkipReason.no_fragments.value,
        )

    def test_unknown_stage(self, default_cfg):
        assert gate("ocr", default_cfg) == (False, SkipReason.not_applicable.value)


# ── run_stage() ────────────────────────────────────────────────────────


class TestRunStage:
    def test_success(self, default_cfg):
        stages = {}
        with run_stage("proximity", default_cfg, stages) as sr:
            assert sr.ran
        assert sr.status == "success"
        assert sr.enabled
        assert stages == {"proximity": sr}

    def test_skipped(self):
        cfg = GroupingConfig(use_hierarchical_grouping=False)
        stages = {}
        with run_stage("hierarchy", cfg, stages) as sr:
            pass
        assert not sr.ran
        assert not sr.enabled
        assert sr.status == "skipped"
        assert stages["hierarchy"].to_dict()["skip_reason"] == "disabled_by_config"

    def test_failure_recorded_and_reraised(self, default_cfg):
        stages = {}
        with pytest.raises(RuntimeError, match="boom"):
            with run_stage("overlap", default_cfg, stages):
                raise RuntimeError("boom")
        assert stages["overlap"].status == "failed"
        assert stages["overlap"].error == "RuntimeError: boom"

    def test_to_dict_omits_empty_fields(self):
        d = StageResult(stage="scoring", enabled=True, ran=True, status="success").to_dict()
        assert "error" not in d
        assert "counts" not in d
        assert "skip_reason" not in d
        assert d["enabled"] is True


# ── build_groups() ─────────────────────────────────────────────────────


def test_build_groups_ids_boxes_confidence():
    members = stacked([5])
    groups = build_groups([members, [make_fragment("x", 300, 300, 10, 10, confidence=0.4)]])
    assert [g.id for g in groups] == ["group-1", "group-2"]
    assert groups[0].bounding_box.height == 45
    assert groups[1].confidence == pytest.approx(0.4)
    assert all(g.origin is GroupOrigin.auto for g in groups)


def test_build_groups_rejects_empty_union_box():
    with pytest.raises(ComputationFailure, match="empty union box"):
        build_groups([[make_fragment("z", 0, 0, 0, 0)]])


# ── detect() ───────────────────────────────────────────────────────────


class TestDetect:
    def test_empty_input(self):
        result = detect([])
        assert result.groups == []
        assert result.ungrouped_fragments == []
        assert result.confidence == 0
        assert result.stages["hierarchy"].skip_reason == SkipReason.no_fragments.value

    def test_two_close_fragments_form_one_group(self):
        result = detect(stacked([5]))
        assert _partition(result) == ([["f0", "f1"]], [])

    def test_two_notes(self, two_notes):
        result = detect(two_notes)
        assert [g.id for g in result.groups] == ["group-1", "group-2"]
        assert _partition(result)[0] == [["a1", "a2", "a3"], ["b1", "b2", "b3"]]
        assert result.confidence == pytest.approx(0.7 + 0.3 * 0.9)

    def test_stage_order(self, two_notes):
        assert list(detect(two_notes).stages) == STAGE_ORDER

    def test_hierarchy_merges_vertical_neighbours(self):
        frags = [make_fragment("p", 0, 0, 100, 20), make_fragment("q", 0, 70, 100, 20)]
        assert len(detect(frags).groups) == 1
        flat = detect(frags, GroupingConfig(use_hierarchical_grouping=False))
        assert len(flat.groups) == 2
        assert flat.stages["hierarchy"].skip_reason == "disabled_by_config"

    def test_min_group_size_leaves_fragments_ungrouped(self, sparse_fragments):
        result = detect(sparse_fragments, GroupingConfig(min_group_size=2))
        assert result.groups == []
        assert [f.id for f in result.ungrouped_fragments] == ["s0", "s1", "s2", "s3"]
        assert result.confidence == 0.0

    def test_every_fragment_accounted_for_once(self, two_notes, sparse_fragments):
        frags = two_notes + sparse_fragments
        result = detect(frags, GroupingConfig(min_group_size=2))
        grouped = [fid for g in result.groups for fid in g.member_ids()]
        ungrouped = [f.id for f in result.ungrouped_fragments]
        assert len(grouped) == len(set(grouped))
        assert sorted(grouped + ungrouped) == sorted(f.id for f in frags)

    def test_deterministic(self, two_notes, sparse_fragments):
        frags = two_notes + sparse_fragments
        first = detect(frags)
        second = detect(frags)
        assert _partition(first) == _partition(second)
        assert [g.bounding_box for g in first.groups] == [g.bounding_box for g in second.groups]
        assert first.confidence == second.confidence

    def test_confidence_bounded(self, two_notes, sparse_fragments):
        for cfg in (GroupingConfig(), GroupingConfig(min_group_size=3)):
            assert 0.0 <= detect(two_notes + sparse_fragments, cfg).confidence <= 1.0

    def test_to_dict_wire_keys(self, two_notes):
        d = detect(two_notes).to_dict()
        assert set(d) == {"groups", "ungroupedBlocks", "processingTime", "confidence", "stages"}
        assert d["stages"]["scoring"]["counts"]["grouped"] == 6


def test_detect_ocr(two_notes):
    result = detect_ocr(OcrResult(fragments=two_notes, confidence=0.9))
    assert len(result.groups) == 2


class TestDetectFailure:
    def test_stage_records_travel_with_the_error(self, two_notes, monkeypatch):
        def broken(groups, cfg):
            raise ComputationFailure("overlap pass lost a group")

        monkeypatch.setattr("notegroup.pipeline.resolve_overlaps", broken)
        with pytest.raises(ComputationFailure) as excinfo:
            detect(two_notes)

        stages = excinfo.value.stages
        assert list(stages) == ["relationships", "proximity", "hierarchy", "overlap"]
        assert stages["proximity"].status == "success"
        assert stages["overlap"].status == "failed"
        assert "lost a group" in stages["overlap"].error

    def test_failure_without_pipeline_has_no_stages(self):
        assert ComputationFailure("x").stages == {}
