from .pagination import Entity, EntityPage, OrderField, QueryDescriptor
from .state import (
    OffsetState,
    OrderedState,
    PaginationState,
    PendingError,
    PendingErrorKind,
    PivotFilter,
)

__all__ = [
    "Entity",
    "EntityPage",
    "OrderField",
    "QueryDescriptor",
    "OffsetState",
    "OrderedState",
    "PaginationState",
    "PendingError",
    "PendingErrorKind",
    "PivotFilter",
]
