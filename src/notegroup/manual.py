"""Manual create / update / delete of user-drawn group boxes.

Manual groups are an overlay on the automatic output: a fragment may
belong to a manual group and an auto group at the same time.  Membership
is decided by fragment center point, so a fragment is captured as soon as
its center falls inside the drawn box.

The handler depends on two injected collaborators, the
:class:`~notegroup.store.GroupStore` and a callable returning the OCR
fragments of an image.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Callable, List, Optional, Sequence, Union

from .errors import GroupNotFoundError, InvalidInputError
from .geometry import point_in_box
from .models import BoundingBox, Deleted, Group, GroupOrigin, TextFragment
from .store import GroupStore

log = logging.getLogger(__name__)

FragmentSource = Callable[[str], Optional[Sequence[TextFragment]]]

# Manual input is trusted.
MANUAL_CONFIDENCE = 1.0


class ManualAction(str, Enum):
    """User actions on a manual box."""

    create = "create"
    update = "update"
    delete = "delete"


def reassign_members(
    group_id: str, box: BoundingBox, fragments: Sequence[TextFragment]
) -> List[TextFragment]:
    """Return the fragments whose center point lies inside *box*."""
    members = []
    for frag in fragments:
        cx, cy = frag.bounding_box.center()
        if point_in_box(cx, cy, box):
            members.append(frag)
    log.debug(
        "reassign_members: group %s captures %d of %d fragments",
        group_id,
        len(members),
        len(fragments),
    )
    return members


def _new_manual_id() -> str:
    return f"manual-{uuid.uuid4().hex[:12]}"


def _parse_action(action: Union[ManualAction, str, None]) -> ManualAction:
    if action is None or action == "":
        raise InvalidInputError("action is required")
    try:
        return ManualAction(action)
    except ValueError:
        raise InvalidInputError(
            f"action must be create, update, or delete (got {action!r})"
        ) from None


class ManualOverrideHandler:
    """Applies manual box actions against a group store."""

    def __init__(
        self,
        store: GroupStore,
        fragment_source: FragmentSource,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.store = store
        self.fragment_source = fragment_source
        self.id_factory = id_factory or _new_manual_id

    def apply(
        self,
        action: Union[ManualAction, str, None],
        image_id: str,
        box: Optional[BoundingBox] = None,
        group_id: Optional[str] = None,
    ) -> Union[Group, Deleted]:
        """Run one manual action.

        Returns the stored :class:`Group` for create/update and a
        :class:`Deleted` marker for delete.  Raises
        :class:`InvalidInputError` for missing fields before any store
        call, and :class:`GroupNotFoundError` for unknown group ids or an
        image without OCR fragments.
        """
        act = _parse_action(action)
        self._validate(act, image_id, box, group_id)

        if act is ManualAction.delete:
            return self._delete(image_id, group_id)

        fragments = self.fragment_source(image_id)
        if fragments is None:
            raise GroupNotFoundError(f"OCR results not found for image {image_id}")

        if act is ManualAction.create:
            return self._save(image_id, self.id_factory(), box, fragments)

        existing = {g.id for g in self.store.load_groups(image_id)}
        if group_id not in existing:
            raise GroupNotFoundError(f"Group {group_id} not found")
        return self._save(image_id, group_id, box, fragments)

    @staticmethod
    def _validate(
        act: ManualAction,
        image_id: str,
        box: Optional[BoundingBox],
        group_id: Optional[str],
    ) -> None:
        if not image_id:
            raise InvalidInputError("image_id is required")
        if act in (ManualAction.create, ManualAction.update):
            if box is None:
                raise InvalidInputError(f"bounding box is required for {act.value}")
            if not box.is_valid():
                raise InvalidInputError(f"invalid bounding box {box.to_dict()}")
        if act in (ManualAction.update, ManualAction.delete) and not group_id:
            raise InvalidInputError(f"group id is required for {act.value}")

    def _save(
        self,
        image_id: str,
        group_id: str,
        box: BoundingBox,
        fragments: Sequence[TextFragment],
    ) -> Group:
        group = Group(
            id=group_id,
            bounding_box=box,
            members=reassign_members(group_id, box, fragments),
            confidence=MANUAL_CONFIDENCE,
            origin=GroupOrigin.manual,
        )
        self.store.save_group(image_id, group)
        log.info(
            "Saved manual group %s for image %s (%d members)",
            group.id,
            image_id,
            len(group.members),
        )
        return group

    def _delete(self, image_id: str, group_id: str) -> Deleted:
        if not self.store.delete_group(group_id, image_id=image_id):
            raise GroupNotFoundError(f"Group {group_id} not found for image {image_id}")
        log.info("Deleted group %s from image %s", group_id, image_id)
        return Deleted(group_id=group_id)
