"""Thing schemas.

Wire names are camelCase (``clientJs``, ``parentId``...) to match the
persisted record shape; Python code uses snake_case. Both spellings are
accepted on input.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import AliasChoices, AliasGenerator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _either_spelling(name: str) -> AliasChoices:
    return AliasChoices(name, to_camel(name))


class CamelModel(BaseModel):
    """Base schema: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(
            validation_alias=_either_spelling,
            serialization_alias=to_camel,
        ),
        populate_by_name=True,
    )


class Components(CamelModel):
    """The four-fragment payload of a Thing."""
    html: str = ""
    css: str = ""
    client_js: str = ""
    server_js: str = ""

    def to_record(self) -> Dict[str, str]:
        """Persisted spelling: {html, css, clientJs, serverJs}."""
        return self.model_dump(by_alias=True)


class ComponentsUpdate(CamelModel):
    """Partial component bundle; unset fields keep their stored value."""
    html: Optional[str] = None
    css: Optional[str] = None
    client_js: Optional[str] = None
    server_js: Optional[str] = None

    def changes(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)


class HistoryEntry(CamelModel):
    """Immutable snapshot of a past component bundle."""
    timestamp: str
    version: int
    components: Components


class ThingCreate(CamelModel):
    """Schema for creating a Thing."""
    name: str = Field(min_length=1, max_length=255)
    type: str = Field(default="generic", min_length=1, max_length=50)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v.strip() == "system":
            raise ValueError("Type 'system' is reserved")
        return v.strip()


class ThingUpdate(CamelModel):
    """Schema for updating a Thing's components."""
    components: ComponentsUpdate


class ChildAttach(CamelModel):
    """Schema for attaching a child Thing."""
    child_id: str
    order: Optional[int] = None


class ThingSummary(CamelModel):
    """Schema for Thing list responses."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    version: int
    parent_id: Optional[str] = None
    order: Optional[int] = None
    children: List[str] = []
    updated_at: Optional[datetime] = None


class ThingResponse(ThingSummary):
    """Schema for a full Thing, history included."""
    history: List[HistoryEntry] = []
    components: Components
    system_version: Optional[int] = None
    template_hashes: Optional[Dict[str, Optional[str]]] = None
    created_at: Optional[datetime] = None
