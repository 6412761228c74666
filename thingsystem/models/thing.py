"""Thing model."""

from sqlalchemy import Column, Index, String, Integer, DateTime, JSON
from sqlalchemy.sql import func
from ..core.constants import SYSTEM_THING_ID
from ..database import Base


class Thing(Base):
    """Main things table.

    One row holds the whole entity, history included. Every save rewrites
    the row, so storage per save grows with the length of the history.
    """

    __tablename__ = "things"
    __table_args__ = (
        Index("ix_things_parent_id", "parent_id"),
        Index("ix_things_name", "name"),
    )

    # Primary key: uuid4 string, or the fixed system id
    id = Column(String(64), primary_key=True)

    # Display metadata
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, default="generic")

    # Versioning: version == max(history[].version) after every save
    version = Column(Integer, nullable=False, default=0)
    history = Column(JSON, nullable=False, default=list)  # [{timestamp, version, components}]

    # {html, css, clientJs, serverJs}
    components = Column(JSON, nullable=False, default=dict)

    # Hierarchy: ordered child ids plus a back-reference to the parent
    children = Column(JSON, nullable=False, default=list)
    parent_id = Column(String(64), nullable=True, default=None)
    order = Column("sort_order", Integer, nullable=True, default=None)

    # System Thing only
    system_version = Column(Integer, nullable=True, default=None)
    template_hashes = Column(JSON, nullable=True, default=None)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_system(self) -> bool:
        return self.id == SYSTEM_THING_ID

    def __repr__(self) -> str:
        return f"<Thing {self.id} {self.name!r} v{self.version}>"
