"""Which lectures a viewer may see, and which of those may feed AI answers.

Two independent questions:

* **visible**: the lecture sits in one of the viewer's classes, or carries a
  sync key that one of the viewer's classes also carries;
* **eligible**: visible, and allowed for retrieval by the viewer's own
  preference, falling back to the lecture's ``include_in_memory`` default
  when the viewer has never set one.

Visible-but-ineligible is a normal state (a shared lecture the viewer opted
out of).  Eligible always implies visible.
"""

import enum
import logging
from dataclasses import dataclass, field

from app.models import Lecture
from app.services.store import ClassNotesStore

logger = logging.getLogger(__name__)


class Inclusion(enum.Enum):
    """A viewer's per-lecture retrieval preference."""

    UNSET = "unset"
    INCLUDED = "included"
    EXCLUDED = "excluded"

    @classmethod
    def from_pref(cls, value: bool | None) -> "Inclusion":
        if value is None:
            return cls.UNSET
        return cls.INCLUDED if value else cls.EXCLUDED


def is_eligible(inclusion: Inclusion, include_in_memory: bool) -> bool:
    """Resolve a viewer preference against the lecture's legacy default.

    An explicit preference always wins; an unset one defers to
    ``include_in_memory``.
    """
    if inclusion is Inclusion.INCLUDED:
        return True
    if inclusion is Inclusion.EXCLUDED:
        return False
    return bool(include_in_memory)


@dataclass
class Scope:
    visible: set[str] = field(default_factory=set)
    eligible: set[str] = field(default_factory=set)
    lectures: dict[str, Lecture] = field(default_factory=dict)

    @property
    def excluded_by_preference(self) -> bool:
        """True when lectures are visible but none of them is eligible."""
        return bool(self.visible) and not self.eligible


class AccessResolver:
    def __init__(self, store: ClassNotesStore) -> None:
        self.store = store

    async def _viewer_boundary(self, viewer_id: str) -> tuple[list[str], list[str]]:
        classes = await self.store.list_classes(viewer_id)
        class_ids = [c.id for c in classes]
        sync_keys = sorted({c.sync_key for c in classes if c.sync_key})
        return class_ids, sync_keys

    async def visible_lectures(self, viewer_id: str) -> list[Lecture]:
        class_ids, sync_keys = await self._viewer_boundary(viewer_id)
        return await self.store.find_visible_lectures(class_ids, sync_keys)

    async def resolve(self, viewer_id: str, class_id: str | None = None) -> Scope:
        """Compute the viewer's visible and eligible lecture sets.

        *class_id* names the class the question is asked in.  Visibility is
        viewer-wide, so it only shows up in the log line.
        """
        lectures = await self.visible_lectures(viewer_id)
        scope = Scope(
            visible={lec.id for lec in lectures},
            lectures={lec.id: lec for lec in lectures},
        )
        prefs = await self.store.get_prefs(viewer_id, sorted(scope.visible))
        for lec in lectures:
            inclusion = Inclusion.from_pref(prefs.get(lec.id))
            if is_eligible(inclusion, lec.include_in_memory):
                scope.eligible.add(lec.id)

        logger.debug(
            "Scope for viewer %s in class %s: %d visible, %d eligible",
            viewer_id,
            class_id,
            len(scope.visible),
            len(scope.eligible),
        )
        return scope

    async def can_access(self, viewer_id: str, lecture_id: str) -> bool:
        """Visibility test for a single lecture."""
        lecture = await self.store.get_lecture(lecture_id)
        if lecture is None:
            return False
        class_ids, sync_keys = await self._viewer_boundary(viewer_id)
        return lecture.class_id in class_ids or (
            lecture.sync_key is not None and lecture.sync_key in sync_keys
        )
