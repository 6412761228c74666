"""Thing repository for database operations.

Owns the query logic for the ``things`` table. It never decides *whether*
a change is allowed; ContentStore does that and calls in here to read and
write rows.
"""

from typing import Dict, List, Optional

from ..models import Thing
from ..exceptions import ThingNotFoundError
from .base import BaseRepository


class ThingRepository(BaseRepository[Thing]):
    """Repository for Thing CRUD operations."""

    model_class = Thing
    not_found_error = ThingNotFoundError

    def create(
        self,
        thing_id: str,
        name: str,
        thing_type: str,
        components: Dict[str, str],
    ) -> Thing:
        """Insert a new Thing at version 0 with an empty history."""
        db_thing = Thing(
            id=thing_id,
            name=name,
            type=thing_type,
            version=0,
            history=[],
            components=components,
            children=[],
            parent_id=None,
            order=None,
        )
        self.db.add(db_thing)
        self.db.flush()
        return db_thing

    # get_by_id and get_by_id_optional are inherited from BaseRepository.

    def get_many(self, thing_ids: List[str]) -> Dict[str, Thing]:
        """Fetch several Things at once, keyed by id. Missing ids are absent."""
        if not thing_ids:
            return {}
        rows = self.db.query(Thing).filter(Thing.id.in_(thing_ids)).all()
        return {row.id: row for row in rows}

    def get_all(self, skip: int = 0, limit: int = 100) -> List[Thing]:
        """Get Things ordered by creation time."""
        return (
            self.db.query(Thing)
            .order_by(Thing.created_at, Thing.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_by_name(self, name: str) -> Optional[Thing]:
        return self.db.query(Thing).filter(Thing.name == name).first()

    def get_children_of(self, parent_id: str) -> List[Thing]:
        """Things whose back-reference points at *parent_id*."""
        return self.db.query(Thing).filter(Thing.parent_id == parent_id).all()

    def count(self) -> int:
        return self.db.query(Thing).count()

    def delete(self, thing: Thing) -> None:
        self.db.delete(thing)
        self.db.flush()
