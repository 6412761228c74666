"""Primary-key lookups shared by repositories.

A subclass names its mapped class and the error raised for a missing
row. ``fresh=True`` re-reads the row even when the session already holds
it, which is what a caller wants right after taking a write lock.
"""

from typing import Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from ..database import Base
from ..exceptions import ThingSystemError

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):

    model_class: Type[ModelT]
    not_found_error: Type[ThingSystemError]

    def __init__(self, db: Session):
        self.db = db

    def get_by_id_optional(self, entity_id: str, fresh: bool = False) -> Optional[ModelT]:
        return self.db.get(self.model_class, entity_id, populate_existing=fresh)

    def get_by_id(self, entity_id: str, fresh: bool = False) -> ModelT:
        """Like ``get_by_id_optional`` but raises ``not_found_error`` for a missing row."""
        entity = self.get_by_id_optional(entity_id, fresh=fresh)
        if entity is None:
            raise self.not_found_error(entity_id)
        return entity
