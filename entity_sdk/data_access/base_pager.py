# entity_sdk/data_access/base_pager.py
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from entity_sdk.exceptions import (
    InvalidParametersError,
    MalformedResponseError,
    UnsuitableForOrderedFetchError,
)
from entity_sdk.schemas.pagination import Entity, EntityPage, OrderField
from entity_sdk.schemas.state import (
    BaseState,
    PendingError,
    PendingErrorKind,
    PivotFilter,
)
from .ordering import (
    boundary_run,
    get_entity_id,
    get_entity_value,
    resolve_order_field,
)
from .page_fetcher import PageFetcher

logger = logging.getLogger("entity_sdk.data_access.base_pager")

# Changing any of these in the middle of a walk changes which entities
# belong to it, so positions or watermarks from earlier calls become wrong.
STRUCTURAL_PARAMETERS = frozenset({"start", "fields", "orderby", "order"})


def normalize_parameters(parameters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Lower-cases parameter names and copies list values."""
    normalized: Dict[str, Any] = {}
    for key, value in (parameters or {}).items():
        normalized[str(key).lower()] = list(value) if isinstance(value, (list, tuple)) else value
    return normalized


class BasePager(ABC):
    """
    Bookkeeping shared by the offset and ordered pagers: validating
    continuation parameters, and turning a fetched page into the next state.
    """

    def __init__(self, fetcher: PageFetcher, order_fields: Optional[Mapping[str, OrderField]] = None):
        self.fetcher = fetcher
        self.order_fields = order_fields
        logger.debug(f"Pager '{self.__class__.__name__}' initialized.")

    @abstractmethod
    async def more(
        self, state: BaseState, extra_parameters: Optional[Mapping[str, Any]] = None, **options: Any
    ) -> Tuple[List[Entity], BaseState]:
        """Fetches the batch following the one recorded in the state."""
        raise NotImplementedError

    @staticmethod
    def check_extra_parameters(extra_parameters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        extra = normalize_parameters(extra_parameters)
        if STRUCTURAL_PARAMETERS.intersection(extra):
            logger.warning(f"Rejected continuation parameters: {sorted(STRUCTURAL_PARAMETERS.intersection(extra))}")
            raise InvalidParametersError()
        return extra

    def resolve_order_field(self, resource: str, parameters: Mapping[str, Any]) -> OrderField:
        return resolve_order_field(resource, parameters, self.order_fields)

    def analyse_batch(self, resource: str, parameters: Mapping[str, Any], entities: List[Entity]) -> Optional[PendingError]:
        """
        Finds the reason, if any, why an ordered call cannot follow this batch.
        Nothing is raised here: the caller may not even want ordered fetching.
        """
        if not entities:
            return None
        try:
            order_field = self.resolve_order_field(resource, parameters)
            run = boundary_run(entities, order_field.field)
            if len(run) == len(entities):
                return PendingError(
                    kind=PendingErrorKind.AMBIGUOUS_BOUNDARY,
                    message=f"All entities in the previous batch had the same value for '{order_field.field}'; further ordered fetching cannot proceed.",
                )
            previous_value = get_entity_value(entities[-len(run) - 1], order_field.field)
            last_value = get_entity_value(run[0], order_field.field)
            if order_field.order == "desc" and previous_value < last_value:
                return PendingError(
                    kind=PendingErrorKind.UNEXPECTED_ORDER,
                    message=f"The dataset was supposedly ordered descending by '{order_field.field}' but the last few entities in the previous batch showed increasing values for '{order_field.field}'.",
                )
            if order_field.order == "asc" and previous_value > last_value:
                return PendingError(
                    kind=PendingErrorKind.UNEXPECTED_ORDER,
                    message=f"The dataset was supposedly ordered ascending by '{order_field.field}' but the last few entities in the previous batch showed decreasing values for '{order_field.field}'.",
                )
        except UnsuitableForOrderedFetchError as e:
            return PendingError(kind=PendingErrorKind.UNSUITABLE, message=str(e))
        except MalformedResponseError as e:
            return PendingError(kind=PendingErrorKind.MALFORMED_ENTITY, message=str(e))
        except TypeError:
            return PendingError(
                kind=PendingErrorKind.MALFORMED_ENTITY,
                message=f"The values for '{order_field.field}' in the previous batch cannot be compared with each other.",
            )
        return None

    def settle(
        self,
        state_cls: Type[BaseState],
        previous: BaseState,
        page: EntityPage,
        request_parameters: Mapping[str, Any],
        delivered: List[Entity],
        overrides: Dict[str, Any],
        pivot: Optional[PivotFilter],
    ) -> BaseState:
        """
        Builds the state following a fetched page. Only entities actually
        delivered to the caller are counted.
        """
        tracker = previous.tracker
        tracker.track(get_entity_id(entity) for entity in delivered)
        pending_error = self.analyse_batch(previous.resource, request_parameters, page.data)
        if pending_error is not None and pending_error.kind == PendingErrorKind.UNSUITABLE:
            logger.debug(f"No ordered fetching possible for '{previous.resource}': {pending_error.message}")
        elif pending_error is not None:
            logger.warning(f"Ordered fetching after this batch of '{previous.resource}' will not work: {pending_error.message}")
        all_fetched = page.is_last
        if all_fetched:
            logger.info(f"All entities of '{previous.resource}' fetched ({tracker.count} distinct).")
        return state_cls(
            descriptor=previous.descriptor,
            overrides=overrides,
            next_start=page.start + page.count,
            all_fetched=all_fetched,
            last_batch=page.data,
            pending_error=pending_error,
            pivot=pivot,
            tracker=tracker,
        )

