# entity_sdk/schemas/state.py
"""
Serializable snapshot of a batched walk.

The state is a tagged union on ``mode``: ``OffsetState`` after a call that
advanced by position, ``OrderedState`` after a call that advanced by pivot
value. Both carry the bookkeeping the other mode needs to take over.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from entity_sdk.data_access.tracker import FetchCountTracker
from .pagination import Entity, QueryDescriptor


class PendingErrorKind(str, Enum):
    UNSUITABLE = "unsuitable"
    AMBIGUOUS_BOUNDARY = "ambiguous_boundary"
    UNEXPECTED_ORDER = "unexpected_order"
    MALFORMED_ENTITY = "malformed_entity"


class PendingError(BaseModel):
    """Reason why the next ordered call cannot run, found while analysing the last batch."""

    kind: PendingErrorKind
    message: str


class PivotFilter(BaseModel):
    """
    The watermark filter that the last ordered request added to the base
    'fields' filter. Offset continuations keep using it, because their
    position is relative to the filtered result set.
    """

    field: str
    order: Literal["asc", "desc"] = "asc"
    unique: bool = False
    # None when exported without filter values
    expression: Optional[str] = None


class BaseState(BaseModel):
    descriptor: QueryDescriptor
    overrides: Dict[str, Any] = Field(
        default_factory=dict,
        description="Parameters changed by continuation calls (limit, passthrough options).",
    )
    next_start: int = Field(0, description="'start' for the next offset request.")
    all_fetched: bool = False
    last_batch: Optional[List[Entity]] = Field(
        None, description="Entities of the last fetched page; None if left out of an export."
    )
    pending_error: Optional[PendingError] = None
    pivot: Optional[PivotFilter] = None
    tracker: FetchCountTracker = Field(default_factory=FetchCountTracker)
    filters_redacted: bool = False
    filter_count: int = Field(0, ge=0)

    model_config = ConfigDict(extra="forbid")

    @property
    def resource(self) -> str:
        return self.descriptor.resource

    @property
    def live_parameters(self) -> Dict[str, Any]:
        """Descriptor parameters with the continuation overrides applied, without 'start'."""
        parameters = {**self.descriptor.parameters, **self.overrides}
        parameters.pop("start", None)
        return parameters


class OffsetState(BaseState):
    mode: Literal["offset"] = "offset"


class OrderedState(BaseState):
    mode: Literal["ordered"] = "ordered"
    pivot: PivotFilter


PaginationState = Annotated[Union[OffsetState, OrderedState], Field(discriminator="mode")]

pagination_state_adapter: TypeAdapter = TypeAdapter(PaginationState)
