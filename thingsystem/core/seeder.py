"""Seed the example Things on startup.

Loads a JSON fixture describing a tree of Things (a nested menu) and
hangs it under the system Thing so a fresh install renders something.
Idempotent: Things are matched by name and existing ones are reused, and
attachments that already exist are left alone.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from .constants import SYSTEM_THING_ID

logger = logging.getLogger(__name__)

_FIXTURE_PATH = Path(__file__).parent.parent / "fixtures" / "seed_things.json"


def seed_example_things(db: Session, fixture_path: Path = _FIXTURE_PATH) -> int:
    """Create the example Things that do not exist yet.

    Args:
        db: An open SQLAlchemy session.
        fixture_path: JSON file with a ``things`` list of nested entries.

    Returns:
        Number of Things created (0 if everything was already there).
    """
    from ..services.content_store import ContentStore

    if not fixture_path.exists():
        logger.debug("No seed fixture at %s", fixture_path)
        return 0

    try:
        with open(fixture_path, encoding="utf-8") as f:
            fixture = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to read seed fixture: %s", e)
        return 0

    store = ContentStore(db)
    system = store.find(SYSTEM_THING_ID)
    created = 0
    for position, entry in enumerate(fixture.get("things", [])):
        created += _seed_entry(store, entry, system, position)

    if created:
        logger.info("Seeded %d example things", created)
    return created


def _seed_entry(store, entry: Dict[str, Any], parent: Optional[Any], position: int) -> int:
    created = 0
    thing = store.find_by_name(entry["name"])
    if thing is None:
        thing = store.create(entry["name"], components=entry.get("components", {}))
        created += 1

    if parent is not None and thing.id not in (parent.children or []):
        store.add_child(parent, thing, position)

    for child_position, child_entry in enumerate(entry.get("children", [])):
        created += _seed_entry(store, child_entry, thing, child_position)
    return created
