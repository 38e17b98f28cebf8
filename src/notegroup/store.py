"""Group persistence: the store contract and two implementations.

The store keeps member *ids* only.  :meth:`GroupStore.load_groups`
resolves them against the fragments the caller supplies; without
fragments the returned groups have empty member lists.

Stores guarantee at most one concurrent writer per group id; the engine
itself does no locking.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from .errors import InvalidInputError
from .models import BoundingBox, Group, GroupOrigin, TextFragment

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StoredGroup:
    """A persisted group row."""

    id: str
    image_id: str
    bounding_box: BoundingBox
    member_ids: List[str] = field(default_factory=list)
    confidence: float = 0.0
    origin: GroupOrigin = GroupOrigin.auto
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_group(cls, image_id: str, group: Group) -> "StoredGroup":
        """Build a row for *group*; timestamps are set to now."""
        return cls(
            id=group.id,
            image_id=image_id,
            bounding_box=group.bounding_box,
            member_ids=group.member_ids(),
            confidence=group.confidence,
            origin=group.origin,
        )

    def to_group(self, fragments: Optional[Dict[str, TextFragment]] = None) -> Group:
        """Rebuild a :class:`Group`, resolving member ids through *fragments*."""
        members: List[TextFragment] = []
        if fragments is not None:
            missing = [fid for fid in self.member_ids if fid not in fragments]
            if missing:
                log.warning(
                    "Group %s references %d unknown fragment(s); skipping them",
                    self.id,
                    len(missing),
                )
            members = [fragments[fid] for fid in self.member_ids if fid in fragments]
        return Group(
            id=self.id,
            bounding_box=self.bounding_box,
            members=members,
            confidence=self.confidence,
            origin=self.origin,
        )

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict."""
        return {
            "id": self.id,
            "imageId": self.image_id,
            "boundingBox": self.bounding_box.to_dict(),
            "textBlockIds": list(self.member_ids),
            "confidence": self.confidence,
            "type": self.origin.value,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "StoredGroup":
        """Deserialize from a dict produced by :meth:`to_dict`."""
        return cls(
            id=d["id"],
            image_id=d["imageId"],
            bounding_box=BoundingBox.from_dict(d["boundingBox"]),
            member_ids=list(d.get("textBlockIds", [])),
            confidence=float(d.get("confidence", 0.0)),
            origin=GroupOrigin(d.get("type", "auto")),
            created_at=datetime.fromisoformat(d["createdAt"]),
            updated_at=datetime.fromisoformat(d["updatedAt"]),
        )


class GroupStore(Protocol):
    """Persistence contract used by the manual-override layer."""

    def save_groups(self, image_id: str, groups: Sequence[Group]) -> List[StoredGroup]:
        """Replace every group of *image_id* with *groups*."""
        ...

    def load_groups(
        self, image_id: str, fragments: Optional[Sequence[TextFragment]] = None
    ) -> List[Group]:
        """Groups of *image_id* in creation order."""
        ...

    def save_group(self, image_id: str, group: Group) -> StoredGroup:
        """Insert or update one group by id."""
        ...

    def delete_group(self, group_id: str, image_id: Optional[str] = None) -> bool:
        """Remove a group; ``False`` when no such group exists.

        Group ids are unique per image only (every image has its own
        ``group-1``), so callers acting on one image pass *image_id*.
        Without it the first match in any image is removed.
        """
        ...


def _by_id(fragments: Optional[Sequence[TextFragment]]) -> Optional[Dict[str, TextFragment]]:
    if fragments is None:
        return None
    return {f.id: f for f in fragments}


def _upsert(rows: Dict[str, StoredGroup], image_id: str, group: Group) -> StoredGroup:
    row = StoredGroup.from_group(image_id, group)
    existing = rows.get(group.id)
    if existing is not None:
        row.created_at = existing.created_at
    rows[group.id] = row
    return row


def _ordered(rows: Dict[str, StoredGroup]) -> List[StoredGroup]:
    # sorted() is stable, so rows created in the same instant keep insert order.
    return sorted(rows.values(), key=lambda r: r.created_at)


class InMemoryGroupStore:
    """Dict-backed store; the default test double."""

    def __init__(self) -> None:
        self._images: Dict[str, Dict[str, StoredGroup]] = {}
        self._lock = threading.Lock()

    def save_groups(self, image_id: str, groups: Sequence[Group]) -> List[StoredGroup]:
        with self._lock:
            rows: Dict[str, StoredGroup] = {}
            for group in groups:
                rows[group.id] = StoredGroup.from_group(image_id, group)
            self._images[image_id] = rows
            return list(rows.values())

    def load_groups(
        self, image_id: str, fragments: Optional[Sequence[TextFragment]] = None
    ) -> List[Group]:
        lookup = _by_id(fragments)
        with self._lock:
            rows = _ordered(self._images.get(image_id, {}))
        return [row.to_group(lookup) for row in rows]

    def save_group(self, image_id: str, group: Group) -> StoredGroup:
        with self._lock:
            return _upsert(self._images.setdefault(image_id, {}), image_id, group)

    def delete_group(self, group_id: str, image_id: Optional[str] = None) -> bool:
        with self._lock:
            if image_id is not None:
                candidates = [self._images.get(image_id, {})]
            else:
                candidates = list(self._images.values())
            for rows in candidates:
                if group_id in rows:
                    del rows[group_id]
                    return True
        return False


class JsonGroupStore:
    """One JSON file per image under *root*.

    Files are rewritten whole via a temp file + ``os.replace`` so a
    crashed write never leaves a truncated file behind.
    """

    SUFFIX = ".groups.json"

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, image_id: str) -> Path:
        """File for *image_id*; ids that would leave ``root`` are rejected."""
        if (
            not image_id
            or image_id in (".", "..")
            or "/" in image_id
            or "\\" in image_id
            or os.sep in image_id
        ):
            raise InvalidInputError(f"invalid image id {image_id!r}")
        path = self.root / f"{image_id}{self.SUFFIX}"
        if path.resolve().parent != self.root.resolve():
            raise InvalidInputError(f"invalid image id {image_id!r}")
        return path

    def _read(self, path: Path) -> Dict[str, StoredGroup]:
        if not path.exists():
            return {}
        data = json.loads(path.read_text(encoding="utf-8"))
        rows = [StoredGroup.from_dict(d) for d in data.get("groups", [])]
        return {r.id: r for r in rows}

    def _write(self, image_id: str, rows: Dict[str, StoredGroup]) -> None:
        target = self._path(image_id)
        payload = {
            "version": 1,
            "imageId": image_id,
            "groups": [r.to_dict() for r in rows.values()],
        }
        fd, tmp = tempfile.mkstemp(dir=self.root, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def save_groups(self, image_id: str, groups: Sequence[Group]) -> List[StoredGroup]:
        with self._lock:
            rows = {g.id: StoredGroup.from_group(image_id, g) for g in groups}
            self._write(image_id, rows)
            log.debug("Saved %d group(s) for image %s", len(rows), image_id)
            return list(rows.values())

    def load_groups(
        self, image_id: str, fragments: Optional[Sequence[TextFragment]] = None
    ) -> List[Group]:
        lookup = _by_id(fragments)
        with self._lock:
            rows = _ordered(self._read(self._path(image_id)))
        return [row.to_group(lookup) for row in rows]

    def save_group(self, image_id: str, group: Group) -> StoredGroup:
        with self._lock:
            rows = self._read(self._path(image_id))
            row = _upsert(rows, image_id, group)
            self._write(image_id, rows)
            return row

    def delete_group(self, group_id: str, image_id: Optional[str] = None) -> bool:
        with self._lock:
            if image_id is not None:
                paths = [self._path(image_id)]
            else:
                paths = sorted(self.root.glob(f"*{self.SUFFIX}"))
            for path in paths:
                rows = self._read(path)
                if group_id in rows:
                    del rows[group_id]
                    image_id = path.name[: -len(self.SUFFIX)]
                    self._write(image_id, rows)
                    return True
        return False
