# entity_sdk/__init__.py
"""
Client SDK for a profile/collection REST API with batched entity fetching.
"""

from entity_sdk.exceptions import (
    AmbiguousBoundaryError,
    ConfigurationError,
    EntityRemovedError,
    EntitySDKError,
    InvalidParametersError,
    InvalidStateError,
    MalformedResponseError,
    PaginationError,
    ServiceCommunicationError,
    StructuralStateMismatchError,
    UnexpectedOrderError,
    UnsuitableForOrderedFetchError,
)
from entity_sdk.schemas import (
    EntityPage,
    OffsetState,
    OrderedState,
    OrderField,
    PaginationState,
    QueryDescriptor,
)
from entity_sdk.clients.base import RestTransport
from entity_sdk.config import EntityApiSettings
from entity_sdk.data_access.batch_manager import BatchedEntityManager
from entity_sdk.logging_config import get_sdk_logger, setup_sdk_logging

__version__ = "0.1.0"

__all__ = [
    "AmbiguousBoundaryError",
    "BatchedEntityManager",
    "ConfigurationError",
    "EntityApiSettings",
    "EntityPage",
    "EntityRemovedError",
    "EntitySDKError",
    "InvalidParametersError",
    "InvalidStateError",
    "MalformedResponseError",
    "OffsetState",
    "OrderField",
    "OrderedState",
    "PaginationError",
    "PaginationState",
    "QueryDescriptor",
    "RestTransport",
    "ServiceCommunicationError",
    "StructuralStateMismatchError",
    "UnexpectedOrderError",
    "UnsuitableForOrderedFetchError",
    "get_sdk_logger",
    "setup_sdk_logging",
]
