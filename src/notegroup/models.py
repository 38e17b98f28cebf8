from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .pipeline import StageResult


class FragmentKind(str, Enum):
    """Granularity of an OCR text fragment."""

    LINE = "LINE"
    WORD = "WORD"
    CELL = "CELL"


class RelationshipKind(str, Enum):
    """How fragment B sits relative to fragment A."""

    overlapping = "overlapping"
    contained = "contained"
    above = "above"
    below = "below"
    left = "left"
    right = "right"


class GroupOrigin(str, Enum):
    """Who produced a group: the engine or a user-drawn box."""

    auto = "auto"
    manual = "manual"


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in image coordinates (y grows downward)."""

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def center(self) -> Tuple[float, float]:
        """Box center as ``(x, y)``."""
        return (self.left + self.width / 2, self.top + self.height / 2)

    def is_valid(self) -> bool:
        """True when the box can be drawn or grouped (non-negative origin, positive size)."""
        return (
            self.left >= 0 and self.top >= 0 and self.width > 0 and self.height > 0
        )

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict."""
        return {
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "BoundingBox":
        """Deserialize from a dict produced by :meth:`to_dict`."""
        return cls(
            left=float(d["left"]),
            top=float(d["top"]),
            width=float(d["width"]),
            height=float(d["height"]),
        )


ZERO_BOX = BoundingBox(0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class TextFragment:
    """One OCR-recognized text unit.  Read-only once produced."""

    id: str
    text: str
    confidence: float
    bounding_box: BoundingBox
    kind: FragmentKind = FragmentKind.LINE

    def to_dict(self) -> dict:
        """Serialize to the OCR wire format."""
        return {
            "id": self.id,
            "text": self.text,
            "confidence": self.confidence,
            "boundingBox": self.bounding_box.to_dict(),
            "type": self.kind.value,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "TextFragment":
        """Deserialize from a dict produced by :meth:`to_dict`."""
        return cls(
            id=str(d["id"]),
            text=d.get("text", ""),
            confidence=float(d.get("confidence", 0.0)),
            bounding_box=BoundingBox.from_dict(d["boundingBox"]),
            kind=FragmentKind(str(d.get("type", "LINE")).upper()),
        )


@dataclass(frozen=True)
class SpatialRelationship:
    """Derived pairwise relationship; recomputed on every run."""

    fragment_id_a: str
    fragment_id_b: str
    distance: float
    kind: RelationshipKind

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict."""
        return {
            "blockId1": self.fragment_id_a,
            "blockId2": self.fragment_id_b,
            "distance": self.distance,
            "relationship": self.kind.value,
        }


@dataclass
class Group:
    """A logical grouping of fragments (e.g. one sticky note).

    Auto groups carry the tight union box of their members.  Manual
    groups carry the user-drawn box, independent of member geometry.
    """

    id: str
    bounding_box: BoundingBox
    members: List[TextFragment] = field(default_factory=list)
    confidence: float = 0.0
    origin: GroupOrigin = GroupOrigin.auto

    def member_ids(self) -> List[str]:
        """Ids of the member fragments, in member order."""
        return [m.id for m in self.members]

    def text(self) -> str:
        """Member texts joined with newlines."""
        return "\n".join(m.text for m in self.members if m.text)

    def to_dict(self) -> dict:
        """Serialize to the wire format (members under ``textBlocks``)."""
        return {
            "id": self.id,
            "boundingBox": self.bounding_box.to_dict(),
            "textBlocks": [m.to_dict() for m in self.members],
            "confidence": self.confidence,
            "type": self.origin.value,
        }

    @classmethod
    def from_dict(
        cls, d: dict, fragments: Optional[Dict[str, TextFragment]] = None
    ) -> "Group":
        """Deserialize from a dict produced by :meth:`to_dict`.

        Members may be full fragment dicts or bare ids; bare ids are
        resolved through *fragments* and skipped when unknown.
        """
        members: List[TextFragment] = []
        for item in d.get("textBlocks", []):
            if isinstance(item, dict) and "boundingBox" in item:
                members.append(TextFragment.from_dict(item))
                continue
            frag_id = item["id"] if isinstance(item, dict) else str(item)
            if fragments and frag_id in fragments:
                members.append(fragments[frag_id])
        return cls(
            id=str(d["id"]),
            bounding_box=BoundingBox.from_dict(d["boundingBox"]),
            members=members,
            confidence=float(d.get("confidence", 0.0)),
            origin=GroupOrigin(d.get("type", "auto")),
        )


@dataclass
class OcrResult:
    """Output of the OCR collaborator for one image."""

    fragments: List[TextFragment] = field(default_factory=list)
    confidence: float = 0.0
    processing_time: float = 0.0

    def to_dict(self) -> dict:
        """Serialize to the OCR wire format."""
        return {
            "extractedText": [f.to_dict() for f in self.fragments],
            "confidence": self.confidence,
            "processingTime": self.processing_time,
        }


@dataclass
class DetectionResult:
    """Result of :func:`notegroup.pipeline.detect`."""

    groups: List[Group] = field(default_factory=list)
    ungrouped_fragments: List[TextFragment] = field(default_factory=list)
    confidence: float = 0.0
    processing_time_ms: int = 0
    stages: Dict[str, "StageResult"] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the detection response wire format."""
        return {
            "groups": [g.to_dict() for g in self.groups],
            "ungroupedBlocks": [f.to_dict() for f in self.ungrouped_fragments],
            "processingTime": self.processing_time_ms,
            "confidence": self.confidence,
            "stages": {n: sr.to_dict() for n, sr in self.stages.items()},
        }


@dataclass
class SeparationResult:
    """Result of :func:`notegroup.separation.separate_overlapping`."""

    original_count: int
    result_count: int
    groups: List[Group] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the separation response wire format."""
        return {
            "originalGroups": self.original_count,
            "separatedGroups": self.result_count,
            "groups": [g.to_dict() for g in self.groups],
        }


@dataclass(frozen=True)
class Deleted:
    """Outcome of a manual Delete; distinct from a normal group payload."""

    group_id: str

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict."""
        return {"deleted": True, "groupId": self.group_id}
