"""Ingest stage: OCR collaborator output → :class:`~notegroup.models.OcrResult`.

Public API
----------
- :func:`parse_ocr_result` — build an :class:`OcrResult` from a decoded dict
- :func:`load_ocr_result` — read and parse an OCR JSON file
- :func:`normalize_confidences` — bring a 0–100 run onto the 0–1 scale
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, List, Sequence

from .config import GroupingConfig
from .models import OcrResult, TextFragment

log = logging.getLogger(__name__)


class IngestError(Exception):
    """Raised when OCR output cannot be ingested."""


def normalize_confidences(fragments: Sequence[TextFragment]) -> List[TextFragment]:
    """Rescale confidences to 0–1 when the run uses the 0–100 scale.

    A run is on the 0–100 scale as soon as any confidence exceeds 1, so
    scales are never mixed within one run.
    """
    fragments = list(fragments)
    for frag in fragments:
        if not (0.0 <= frag.confidence <= 100.0):
            raise IngestError(
                f"Fragment {frag.id}: confidence {frag.confidence} outside [0, 100]"
            )
    if all(f.confidence <= 1.0 for f in fragments):
        return fragments
    return [dataclasses.replace(f, confidence=f.confidence / 100.0) for f in fragments]


def parse_ocr_result(
    data: dict[str, Any], cfg: GroupingConfig | None = None
) -> OcrResult:
    """Build an :class:`OcrResult` from the OCR wire format.

    Fragments with unusable geometry (negative origin, zero size) are
    dropped with a warning.  Duplicate ids are rejected.
    """
    cfg = cfg or GroupingConfig()
    if not isinstance(data, dict) or "extractedText" not in data:
        raise IngestError("OCR result must be an object with an 'extractedText' list")

    fragments: List[TextFragment] = []
    seen: set[str] = set()
    for i, item in enumerate(data["extractedText"]):
        try:
            frag = TextFragment.from_dict(item)
        except (KeyError, TypeError, ValueError) as exc:
            raise IngestError(f"extractedText[{i}] is malformed: {exc}") from exc
        if frag.id in seen:
            raise IngestError(f"Duplicate fragment id {frag.id!r}")
        seen.add(frag.id)
        if not frag.bounding_box.is_valid():
            log.warning(
                "Dropping fragment %s with invalid box %s",
                frag.id,
                frag.bounding_box.to_dict(),
            )
            continue
        fragments.append(frag)

    if cfg.normalize_confidence:
        fragments = normalize_confidences(fragments)

    return OcrResult(
        fragments=fragments,
        confidence=float(data.get("confidence", 0.0)),
        processing_time=float(data.get("processingTime", 0.0)),
    )


def load_ocr_result(path: Path | str, cfg: GroupingConfig | None = None) -> OcrResult:
    """Read an OCR JSON file and parse it with :func:`parse_ocr_result`."""
    path = Path(path)
    if not path.exists():
        raise IngestError(f"File not found: {path}")
    if not path.is_file():
        raise IngestError(f"Not a file: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise IngestError(f"Invalid JSON in {path}: {exc}") from exc
    result = parse_ocr_result(data, cfg)
    log.info("Ingested %d fragment(s) from %s", len(result.fragments), path)
    return result
