"""Exception hierarchy for the grouping engine.

Configuration and ingest errors live beside the modules that raise them
(:class:`notegroup.config.ConfigValidationError`,
:class:`notegroup.ingest.IngestError`).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .pipeline import StageResult


class GroupingError(Exception):
    """Base class for grouping-engine errors."""


class InvalidInputError(GroupingError):
    """A manual operation or store call carries a missing or bad field."""


class GroupNotFoundError(GroupingError):
    """The requested group (or the image's OCR fragments) does not exist."""


class ComputationFailure(GroupingError):
    """An internal invariant was violated; never recovered automatically.

    When raised out of :func:`notegroup.pipeline.detect`, ``stages`` holds
    the stage records up to and including the failed one.
    """

    def __init__(
        self, message: str, stages: Optional[Dict[str, "StageResult"]] = None
    ) -> None:
        super().__init__(message)
        self.stages: Dict[str, "StageResult"] = stages or {}
