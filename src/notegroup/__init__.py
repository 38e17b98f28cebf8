"""Bounding-box grouping engine for OCR text fragments.

Frequently-used symbols are re-exported here for convenience.
For stage internals (merge criteria, split candidates, overlay helpers)
import directly from the relevant submodule, e.g.::

    from notegroup.grouping.clustering import should_merge
    from notegroup.separation import split_vertically
"""

# ── Core models & config ──────────────────────────────────────────────

from .config import ConfigValidationError, GroupingConfig
from .errors import (
    ComputationFailure,
    GroupingError,
    GroupNotFoundError,
    InvalidInputError,
)
from .ingest import IngestError, load_ocr_result, parse_ocr_result
from .manual import ManualAction, ManualOverrideHandler, reassign_members
from .models import (
    BoundingBox,
    Deleted,
    DetectionResult,
    FragmentKind,
    Group,
    GroupOrigin,
    OcrResult,
    RelationshipKind,
    SeparationResult,
    SpatialRelationship,
    TextFragment,
)
from .pipeline import StageResult, detect, detect_ocr
from .separation import separate_overlapping
from .store import GroupStore, InMemoryGroupStore, JsonGroupStore, StoredGroup

__all__ = [
    # Models & config
    "BoundingBox",
    "ConfigValidationError",
    "Deleted",
    "DetectionResult",
    "FragmentKind",
    "Group",
    "GroupOrigin",
    "GroupingConfig",
    "OcrResult",
    "RelationshipKind",
    "SeparationResult",
    "SpatialRelationship",
    "TextFragment",
    # Errors
    "ComputationFailure",
    "GroupNotFoundError",
    "GroupingError",
    "InvalidInputError",
    # Pipeline
    "StageResult",
    "detect",
    "detect_ocr",
    # Ingest
    "IngestError",
    "load_ocr_result",
    "parse_ocr_result",
    # Manual overrides
    "ManualAction",
    "ManualOverrideHandler",
    "reassign_members",
    # Separation
    "separate_overlapping",
    # Persistence
    "GroupStore",
    "InMemoryGroupStore",
    "JsonGroupStore",
    "StoredGroup",
]
