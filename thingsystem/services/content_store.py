"""Content store: every read and write of a Thing goes through here.

Owns identity, persistence and version history of every Thing and is the
only code path that mutates stored state. Callers get high-level
operations (create, save, restore, attach, detach, delete); locking,
snapshotting and referential integrity are handled here.

Concurrency: each mutation holds a process-wide lock for every Thing it
touches, acquired in sorted order. Structural changes (attach, detach,
delete) also hold a tree-wide lock so cycle checks run against a stable
graph. Inside a lock the rows about to change are re-read from the
database, so two requests with separate sessions cannot overwrite each
other's edits.

Persistence: every mutation commits the whole record, history included.
History therefore grows the row on every save; there is no append-only
log or compaction.
"""

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import Session

from ..core.constants import (
    COMPONENT_KEYS,
    DEFAULT_COMPONENTS,
    SYSTEM_THING_ID,
    SYSTEM_THING_NAME,
    SYSTEM_THING_TYPE,
)
from ..exceptions import (
    CycleDetectedError,
    ProtectedThingError,
    ThingNotFoundError,
    ValidationError,
    VersionNotFoundError,
)
from ..models import Thing
from ..repositories import ThingRepository

logger = logging.getLogger(__name__)

# Pseudo-id serializing structural changes. Sorts before any real id.
_TREE_LOCK_KEY = "\x00tree"


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class _ThingLocks:
    """Registry of per-Thing re-entrant locks shared by every store instance.

    An entry lives only while some thread holds or waits for it, so ids
    that never existed or were deleted do not accumulate.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, _LockEntry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Hold the locks for *keys*, acquired in sorted order to avoid deadlock."""
        ordered = sorted(set(keys))
        with self._guard:
            entries = [self._entries.setdefault(key, _LockEntry()) for key in ordered]
            for entry in entries:
                entry.users += 1
        acquired: List[_LockEntry] = []
        try:
            for entry in entries:
                entry.lock.acquire()
                acquired.append(entry)
            yield
        finally:
            for entry in reversed(acquired):
                entry.lock.release()
            with self._guard:
                for key, entry in zip(ordered, entries):
                    entry.users -= 1
                    if entry.users == 0:
                        del self._entries[key]


_locks = _ThingLocks()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_components(components: Optional[Mapping[str, object]]) -> Dict[str, str]:
    """Return a bundle with exactly the four component keys, all strings."""
    components = components or {}
    return {key: str(components.get(key) or "") for key in COMPONENT_KEYS}


class ContentStore:
    """Deep module for Thing persistence, identity and versioning.

    Bound to one SQLAlchemy session, like the other services. The lock
    registry is module level, so any number of stores (one per request)
    still serialize writes to the same Thing.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = ThingRepository(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, thing_id: str) -> Thing:
        """Get a Thing by id. Raises ThingNotFoundError if missing."""
        return self.repo.get_by_id(thing_id)

    def find(self, thing_id: str) -> Optional[Thing]:
        """Get a Thing by id, or None. Used as the renderer's lookup."""
        return self.repo.get_by_id_optional(thing_id)

    def find_by_name(self, name: str) -> Optional[Thing]:
        return self.repo.get_by_name(name)

    def list_things(self, skip: int = 0, limit: int = 100) -> List[Thing]:
        return self.repo.get_all(skip, limit)

    def count(self) -> int:
        return self.repo.count()

    # ------------------------------------------------------------------
    # Create / save / restore
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        thing_type: str = "generic",
        components: Optional[Mapping[str, str]] = None,
        thing_id: Optional[str] = None,
    ) -> Thing:
        """Create a Thing at version 0 with an empty history.

        Components default to the new-Thing template. An explicit
        *thing_id* must not already exist.
        """
        thing_id = thing_id or str(uuid.uuid4())
        bundle = normalize_components(DEFAULT_COMPONENTS if components is None else components)

        with _locks.hold(thing_id):
            if self.repo.get_by_id_optional(thing_id) is not None:
                raise ValidationError(f"Thing id already exists: {thing_id}", field="id")
            thing = self.repo.create(thing_id, name, thing_type, bundle)
            self.db.commit()

        logger.info("Created thing %s (%s)", thing_id, name, extra={"thing_id": thing_id})
        return thing

    def save(self, thing: Thing) -> bool:
        """Snapshot the Thing's current components if they changed.

        Compares ``thing.components`` with the latest history snapshot.
        Identical: nothing is written and False is returned. Different (or
        no history yet): a deep-copied snapshot is appended at
        ``version + 1``, the version is advanced, the record is persisted
        and True is returned.
        """
        with _locks.hold(thing.id):
            self._reload(thing, "history", "version")
            return self._save_locked(thing)

    def update_components(self, thing_id: str, changes: Mapping[str, str]) -> Tuple[Thing, bool]:
        """Merge a partial component bundle into a Thing and save it.

        Returns (thing, changed) where *changed* says whether a new version
        was recorded. Changing the system Thing's ``serverJs`` raises
        ProtectedThingError; resending its current value is allowed.
        """
        unknown = set(changes) - set(COMPONENT_KEYS)
        if unknown:
            raise ValidationError(f"Unknown components: {sorted(unknown)}", field="components")

        with _locks.hold(thing_id):
            thing = self.repo.get_by_id(thing_id, fresh=True)
            current = normalize_components(thing.components)
            if thing.is_system and changes.get("serverJs", current["serverJs"]) != current["serverJs"]:
                # Only the template file on disk may define what the host executes.
                raise ProtectedThingError(
                    thing_id, "The system Thing's server fragment can only be changed through its template"
                )
            thing.components = {**current, **changes}
            changed = self._save_locked(thing)
        return thing, changed

    def restore(self, thing: Thing, version: int) -> Thing:
        """Make a historical snapshot the current components.

        No history entry is appended; ``version`` is set to the restored
        number. The next save that changes anything still appends one past
        the highest version in the history. Raises
        VersionNotFoundError, leaving the Thing untouched, when no snapshot
        carries exactly *version*.
        """
        with _locks.hold(thing.id):
            self._reload(thing, "history", "version")
            snapshot = next(
                (entry for entry in thing.history or [] if entry.get("version") == version),
                None,
            )
            if snapshot is None:
                raise VersionNotFoundError(thing.id, version)

            thing.components = copy.deepcopy(snapshot["components"])
            thing.version = version
            self.db.commit()

        logger.info(
            "Restored thing %s to version %d", thing.id, version,
            extra={"thing_id": thing.id, "restored_version": version},
        )
        return thing

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    def add_child(self, parent: Thing, child: Thing, order: Optional[int] = None) -> Thing:
        """Attach *child* under *parent*. Idempotent for an existing pair.

        Rejects an attachment that would make the graph cyclic. A child
        that already hangs under another parent is moved. *order* defaults
        to the append position; re-attaching without an order keeps the
        current one.
        """
        with _locks.hold(_TREE_LOCK_KEY, parent.id, child.id):
            parent = self._fresh(parent)
            child = self._fresh(child)

            if parent.id == child.id:
                raise CycleDetectedError([parent.id, child.id])
            path_back = self._find_path(child.id, parent.id)
            if path_back is not None:
                raise CycleDetectedError([parent.id, *path_back])

            if child.parent_id and child.parent_id != parent.id:
                self._detach_from(child.parent_id, child.id)

            children = list(parent.children or [])
            if child.id in children:
                default_order = child.order if child.order is not None else children.index(child.id)
            else:
                children.append(child.id)
                default_order = len(children) - 1

            parent.children = children
            child.parent_id = parent.id
            child.order = default_order if order is None else order
            self.db.commit()

        logger.info(
            "Attached %s under %s", child.id, parent.id,
            extra={"parent_id": parent.id, "child_id": child.id},
        )
        return parent

    def remove_child(self, parent: Thing, child: Thing) -> Thing:
        """Detach *child* from *parent*, resetting its back-reference and order."""
        with _locks.hold(_TREE_LOCK_KEY, parent.id, child.id):
            parent = self._fresh(parent)
            child = self._fresh(child)

            parent.children = [cid for cid in parent.children or [] if cid != child.id]
            if child.parent_id == parent.id:
                child.parent_id = None
                child.order = None
            self.db.commit()

        logger.info(
            "Detached %s from %s", child.id, parent.id,
            extra={"parent_id": parent.id, "child_id": child.id},
        )
        return parent

    def delete(self, thing: Thing) -> List[str]:
        """Delete a Thing, detaching it from its parent and its children.

        Children are not deleted; they become roots. The system Thing
        cannot be deleted. Returns the ids of the detached children.
        """
        thing_id = thing.id
        if thing_id == SYSTEM_THING_ID:
            raise ProtectedThingError(thing_id, "The system Thing cannot be deleted")

        with _locks.hold(_TREE_LOCK_KEY, thing_id):
            thing = self._fresh(thing)

            if thing.parent_id:
                self._detach_from(thing.parent_id, thing.id)

            candidates = {c.id: c for c in self.repo.get_children_of(thing.id)}
            candidates.update(self.repo.get_many(list(thing.children or [])))
            detached = []
            for child in candidates.values():
                if child.parent_id == thing.id:
                    child.parent_id = None
                    child.order = None
                    detached.append(child.id)

            self.repo.delete(thing)
            self.db.commit()

        logger.info(
            "Deleted thing %s, detached %d children", thing_id, len(detached),
            extra={"thing_id": thing_id, "detached": detached},
        )
        return sorted(detached)

    # ------------------------------------------------------------------
    # System Thing
    # ------------------------------------------------------------------

    def write_system_revision(
        self,
        components: Mapping[str, str],
        template_hashes: Mapping[str, Optional[str]],
        system_version: int,
    ) -> Tuple[Thing, bool]:
        """Create or revise the system Thing from its template sources.

        An existing record keeps its children and full history; the new
        components go through the normal save path, so at most one
        snapshot is appended. Returns (system_thing, appended).
        """
        with _locks.hold(SYSTEM_THING_ID):
            system = self.repo.get_by_id_optional(SYSTEM_THING_ID, fresh=True)
            if system is None:
                system = self.repo.create(
                    SYSTEM_THING_ID,
                    SYSTEM_THING_NAME,
                    SYSTEM_THING_TYPE,
                    normalize_components(components),
                )
            else:
                system.components = normalize_components(components)

            appended = self._save_locked(system, commit=False)
            system.template_hashes = dict(template_hashes)
            system.system_version = system_version
            self.db.commit()

        logger.info(
            "System thing revision written (version=%s, appended=%s)", system.version, appended,
            extra={"thing_id": SYSTEM_THING_ID, "system_version": system_version},
        )
        return system, appended

    def stamp_system_version(self, system_version: int) -> Thing:
        """Record a new build constant on the system Thing, components untouched."""
        with _locks.hold(SYSTEM_THING_ID):
            system = self.repo.get_by_id(SYSTEM_THING_ID, fresh=True)
            system.system_version = system_version
            self.db.commit()
        logger.info("System thing stamped with system_version %d", system_version)
        return system

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _save_locked(self, thing: Thing, commit: bool = True) -> bool:
        components = normalize_components(thing.components)
        history = list(thing.history or [])

        if history and history[-1].get("components") == components:
            logger.debug("Save of %s is a no-op, components unchanged", thing.id)
            return False

        next_version = max([thing.version or 0, *(entry["version"] for entry in history)]) + 1
        history.append({
            "timestamp": _utc_now(),
            "version": next_version,
            "components": copy.deepcopy(components),
        })

        thing.components = components
        thing.history = history
        thing.version = next_version
        self.db.flush()
        if commit:
            self.db.commit()

        logger.info(
            "Saved thing %s as version %d", thing.id, next_version,
            extra={"thing_id": thing.id, "version": next_version},
        )
        return True

    def _reload(self, thing: Thing, *attribute_names: str) -> None:
        """Re-read selected columns without discarding pending edits on others."""
        try:
            self.db.refresh(thing, attribute_names=list(attribute_names))
        except InvalidRequestError as e:
            raise ThingNotFoundError(thing.id) from e

    def _fresh(self, thing: Thing) -> Thing:
        return self.repo.get_by_id(thing.id, fresh=True)

    def _detach_from(self, parent_id: str, child_id: str) -> None:
        old_parent = self.repo.get_by_id_optional(parent_id, fresh=True)
        if old_parent is not None:
            old_parent.children = [cid for cid in old_parent.children or [] if cid != child_id]

    def _find_path(self, start_id: str, target_id: str) -> Optional[List[str]]:
        """Depth-first search along ``children`` from start to target.

        Returns the id path (both ends included) or None.
        """
        stack: List[Tuple[str, List[str]]] = [(start_id, [start_id])]
        seen = set()
        while stack:
            current, path = stack.pop()
            if current == target_id:
                return path
            if current in seen:
                continue
            seen.add(current)
            node = self.repo.get_by_id_optional(current)
            if node is None:
                continue
            for child_id in node.children or []:
                stack.append((child_id, [*path, child_id]))
        return None
