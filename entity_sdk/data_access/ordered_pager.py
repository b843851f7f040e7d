# entity_sdk/data_access/ordered_pager.py
import logging
from typing import Any, List, Mapping, Optional, Tuple

from entity_sdk.exceptions import (
    AmbiguousBoundaryError,
    MalformedResponseError,
    PaginationError,
    StructuralStateMismatchError,
    UnexpectedOrderError,
    UnsuitableForOrderedFetchError,
)
from entity_sdk.schemas.pagination import Entity, OrderField
from entity_sdk.schemas.state import (
    BaseState,
    OrderedState,
    PendingError,
    PendingErrorKind,
    PivotFilter,
)
from .base_pager import BasePager
from .offset_pager import OffsetPager
from .ordering import boundary_run, get_entity_id, get_entity_value
from .page_fetcher import PageFetcher

logger = logging.getLogger("entity_sdk.data_access.ordered_pager")

PENDING_ERROR_CLASSES = {
    PendingErrorKind.UNSUITABLE: UnsuitableForOrderedFetchError,
    PendingErrorKind.AMBIGUOUS_BOUNDARY: AmbiguousBoundaryError,
    PendingErrorKind.UNEXPECTED_ORDER: UnexpectedOrderError,
    PendingErrorKind.MALFORMED_ENTITY: MalformedResponseError,
}


def pending_error_to_exception(pending_error: PendingError) -> Exception:
    error_cls = PENDING_ERROR_CLASSES.get(pending_error.kind, PaginationError)
    return error_cls(f"The current dataset cannot be retrieved in an 'ordered' way: {pending_error.message}")


def watermark_expression(order_field: OrderField, value: Any, unique: bool) -> str:
    operator = "<" if order_field.order == "desc" else ">"
    if not unique:
        operator += "="
    return f"{order_field.field}{operator}{value}"


class OrderedPager(BasePager):
    """
    Pages by filtering on the pivot value of the last batch ("everything
    after the watermark"), which is immune to insertions and deletions
    elsewhere in the result set.

    Unless the pivot is known (or asserted) to be unique, the watermark
    filter is inclusive and the entities of the previous boundary run are
    removed from the new batch, so ties at the boundary are neither skipped
    nor delivered twice.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        offset_pager: OffsetPager,
        order_fields: Optional[Mapping[str, OrderField]] = None,
    ):
        super().__init__(fetcher, order_fields)
        self.offset_pager = offset_pager

    async def more(
        self,
        state: BaseState,
        extra_parameters: Optional[Mapping[str, Any]] = None,
        ordered_field_has_unique_values: Optional[bool] = None,
        fall_back_to_unordered: bool = False,
        **options: Any,
    ) -> Tuple[List[Entity], BaseState]:
        """
        Fetches the batch following the last one by pivot value.

        :param ordered_field_has_unique_values: assert (True) or deny (False)
            that pivot values are unique, for this call only. A wrong True
            silently loses the entities tied with the last value of the
            previous batch. None uses the configured knowledge: only the
            resource's own unique key is assumed unique.
        :param fall_back_to_unordered: when the previous batch had one pivot
            value throughout, continue by position instead of raising.
        :raises AmbiguousBoundaryError: recorded after the previous batch.
        :raises UnsuitableForOrderedFetchError: no pivot can be derived.
        :raises StructuralStateMismatchError: the previous batch is not part
            of the (imported) state.
        :raises InvalidParametersError: see OffsetPager.more().
        """
        if state.all_fetched:
            return [], state
        if state.pending_error is not None:
            if state.pending_error.kind == PendingErrorKind.AMBIGUOUS_BOUNDARY and fall_back_to_unordered:
                logger.info(f"Falling back to fetching '{state.resource}' by position: {state.pending_error.message}")
                return await self.offset_pager.more(state, extra_parameters)
            raise pending_error_to_exception(state.pending_error)

        extra = self.check_extra_parameters(extra_parameters)
        if state.last_batch is None:
            raise StructuralStateMismatchError(
                "The previous batch of entities is not part of the state; ordered fetching cannot derive its watermark."
            )
        overrides = {**state.overrides, **extra}
        order_field = self.resolve_order_field(state.resource, state.live_parameters)
        boundary = boundary_run(state.last_batch, order_field.field)
        if not boundary:
            raise StructuralStateMismatchError(
                "The previous batch of entities is empty; ordered fetching cannot derive its watermark."
            )
        watermark = get_entity_value(boundary[0], order_field.field)
        unique = order_field.unique if ordered_field_has_unique_values is None else ordered_field_has_unique_values
        pivot = PivotFilter(
            field=order_field.field,
            order=order_field.order,
            unique=unique,
            expression=watermark_expression(order_field, watermark, unique),
        )

        parameters = {**state.descriptor.parameters, **overrides}
        parameters.pop("start", None)
        parameters["orderby"] = order_field.field
        parameters["order"] = order_field.order
        parameters["fields"] = state.descriptor.fields + [pivot.expression]
        logger.debug(f"Ordered fetch of '{state.resource}' after {pivot.expression} (unique: {unique}).")

        page = await self.fetcher.fetch(state.resource, parameters)
        if page.data:
            self._check_first_value(page.data[0], order_field, watermark)

        delivered = page.data
        if not unique:
            delivered = self._drop_boundary_duplicates(page.data, boundary, order_field.field, watermark)

        new_state = self.settle(
            OrderedState,
            state,
            page,
            request_parameters=parameters,
            delivered=delivered,
            overrides=overrides,
            pivot=pivot,
        )
        return delivered, new_state

    @staticmethod
    def _check_first_value(entity: Entity, order_field: OrderField, watermark: Any) -> None:
        # The store may filter on something else than it orders by (e.g. a
        # regular field that shadows a property name); detect that.
        first_value = get_entity_value(entity, order_field.field)
        try:
            if order_field.order == "desc":
                out_of_range = first_value > watermark
            else:
                out_of_range = first_value < watermark
        except TypeError as e:
            raise UnexpectedOrderError(
                f"The first returned '{order_field.field}' value \"{first_value}\" cannot be compared with the starting value \"{watermark}\"."
            ) from e
        if out_of_range:
            direction = "descending" if order_field.order == "desc" else "ascending"
            raise UnexpectedOrderError(
                f"The dataset was supposedly ordered {direction} by '{order_field.field}', starting at \"{watermark}\", but the first returned '{order_field.field}' value is \"{first_value}\"."
            )

    @staticmethod
    def _drop_boundary_duplicates(
        entities: List[Entity], boundary: List[Entity], field_name: str, watermark: Any
    ) -> List[Entity]:
        """
        Removes the previous boundary run from the top of a new batch. Scanning
        stops at the first entity that is neither part of that run nor tied
        with the watermark; tied newcomers are kept.
        """
        seen_ids = {get_entity_id(entity) for entity in boundary}
        kept: List[Entity] = []
        for index, entity in enumerate(entities):
            if get_entity_id(entity) in seen_ids:
                continue
            kept.append(entity)
            if get_entity_value(entity, field_name) != watermark:
                kept.extend(entities[index + 1:])
                break
        dropped = len(entities) - len(kept)
        if dropped:
            logger.debug(f"Dropped {dropped} entities already delivered in the previous batch.")
        return kept
