# entity_sdk/schemas/pagination.py

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

# Entities are opaque JSON objects; the engine only reads the ID and the
# pivot field out of them.
Entity = Dict[str, Any]


class OrderField(BaseModel):
    """
    A field that a resource's listing is ordered by, and that can be
    filtered with larger/smaller-than expressions.
    """

    field: str = Field(..., description="Property or field name.")
    unique: bool = Field(
        False, description="True if no two entities can share a value for this field."
    )
    order: Literal["asc", "desc"] = Field("asc", description="Direction of the ordering.")

    model_config = ConfigDict(frozen=True)


class QueryDescriptor(BaseModel):
    """
    Immutable description of a listing request, as passed to the first
    listing call.
    """

    resource: str = Field(..., description="Resource path relative to the versioned API.")
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="start / limit / fields / orderby / order / total plus passthrough options.",
    )

    model_config = ConfigDict(frozen=True)

    @property
    def fields(self) -> List[str]:
        return list(self.parameters.get("fields") or [])


class EntityPage(BaseModel):
    """
    Normalized response of one listing call to the Entity Store.
    """

    start: int = Field(..., description="Offset echoed by the store.")
    limit: int = Field(..., description="Limit echoed (possibly capped) by the store.")
    count: int = Field(..., description="Number of entities in 'data'.")
    data: List[Entity] = Field(..., description="The entities of this page.")
    total: Optional[int] = Field(
        None, description="Size of the full result set; only present when requested."
    )

    @property
    def entities(self) -> List[Entity]:
        return self.data

    @property
    def declared_total(self) -> Optional[int]:
        return self.total

    @property
    def is_last(self) -> bool:
        return self.count < self.limit
