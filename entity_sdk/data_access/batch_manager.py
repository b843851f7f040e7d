# entity_sdk/data_access/batch_manager.py
import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx
from pydantic import ValidationError

from entity_sdk.clients.base import RestTransport
from entity_sdk.config import EntityApiSettings
from entity_sdk.exceptions import (
    ConfigurationError,
    InvalidStateError,
    StructuralStateMismatchError,
    UnsuitableForOrderedFetchError,
)
from entity_sdk.logging_config import setup_sdk_logging
from entity_sdk.schemas.pagination import Entity, OrderField, QueryDescriptor
from entity_sdk.schemas.state import BaseState, pagination_state_adapter
from .base_pager import normalize_parameters
from .offset_pager import OffsetPager
from .ordered_pager import OrderedPager
from .page_fetcher import MAX_BATCH_LIMIT, PageFetcher

logger = logging.getLogger("entity_sdk.data_access.batch_manager")


class BatchedEntityManager:
    """
    Walks a large, possibly changing result set of the Entity Store in
    fixed-size batches.

    Usage: start_listing() fetches the first batch; fetch_next() continues
    by position and fetch_next_ordered() continues by pivot value. Both can
    be mixed on the same walk. An empty batch means the walk is over; calling
    again after that keeps returning empty batches. export_state() /
    import_state() move a walk to another instance or process.

    One walk per instance; instances do not share state.
    """

    def __init__(
        self,
        transport: RestTransport,
        order_fields: Optional[Mapping[str, OrderField]] = None,
        max_batch_limit: int = MAX_BATCH_LIMIT,
    ):
        if max_batch_limit <= 0:
            raise ConfigurationError(f"max_batch_limit must be positive, got {max_batch_limit}.")
        self.transport = transport
        self.fetcher = PageFetcher(transport, max_batch_limit=max_batch_limit)
        self.offset_pager = OffsetPager(self.fetcher, order_fields)
        self.ordered_pager = OrderedPager(self.fetcher, self.offset_pager, order_fields)
        self._state: Optional[BaseState] = None
        logger.debug(f"BatchedEntityManager initialized for {transport.api_base_url}.")

    @classmethod
    def from_settings(
        cls,
        settings: EntityApiSettings,
        http_client: Optional[httpx.AsyncClient] = None,
        configure_logging: bool = False,
    ) -> "BatchedEntityManager":
        if configure_logging:
            setup_sdk_logging(settings.LOGGING_LEVEL)
        transport = RestTransport(
            base_url=settings.API_BASE_URL,
            access_token=settings.ACCESS_TOKEN,
            api_version=settings.API_VERSION,
            http_client=http_client,
            timeout=settings.REQUEST_TIMEOUT,
        )
        return cls(
            transport,
            order_fields=settings.DEFAULT_ORDER_FIELDS,
            max_batch_limit=settings.MAX_BATCH_LIMIT,
        )

    @property
    def state(self) -> Optional[BaseState]:
        return self._state

    async def start_listing(self, resource: str, parameters: Optional[Mapping[str, Any]] = None) -> List[Entity]:
        """Fetches the first batch of a new walk, discarding any previous walk."""
        descriptor = QueryDescriptor(resource=resource, parameters=normalize_parameters(parameters))
        entities, self._state = await self.offset_pager.start(descriptor)
        return entities

    async def fetch_next(self, extra_parameters: Optional[Mapping[str, Any]] = None) -> List[Entity]:
        """
        Returns the batch following the previous one, by position.

        :param extra_parameters: 'limit' or passthrough options; they stick
            for the rest of the walk.
        """
        if self._state is None:
            raise InvalidStateError("No listing was started; call start_listing() or import_state() first.")
        entities, self._state = await self.offset_pager.more(self._state, extra_parameters)
        return entities

    async def fetch_next_ordered(
        self,
        extra_parameters: Optional[Mapping[str, Any]] = None,
        *,
        ordered_field_has_unique_values: Optional[bool] = None,
        fall_back_to_unordered: bool = False,
    ) -> List[Entity]:
        """
        Returns the batch following the previous one, by pivot value.
        See OrderedPager.more() for the options and errors.
        """
        if self._state is None:
            raise UnsuitableForOrderedFetchError(
                "The current API resource/query/configuration is not suitable for querying entities in an 'ordered' way."
            )
        entities, self._state = await self.ordered_pager.more(
            self._state,
            extra_parameters,
            ordered_field_has_unique_values=ordered_field_has_unique_values,
            fall_back_to_unordered=fall_back_to_unordered,
        )
        return entities

    def is_exhausted(self) -> bool:
        """
        True once the walk is known to be complete. May stay False after the
        last entity was fetched, if the last batch was exactly full.
        """
        return self._state is not None and self._state.all_fetched

    def distinct_fetched_count(self) -> int:
        """Distinct entities delivered since (and including) start_listing()."""
        return self._state.tracker.count if self._state is not None else 0

    def export_state(self, include_fetched_entities: bool = True, include_filter_values: bool = True) -> Dict[str, Any]:
        """
        Returns a JSON-compatible snapshot of the walk for import_state().

        :param include_fetched_entities: False leaves out the last batch (and
            the IDs counted so far); ordered continuation is then impossible.
        :param include_filter_values: False leaves out the 'fields' filter
            expressions and the watermark; they must be passed back on import.
        """
        if self._state is None:
            raise InvalidStateError("No listing was started; there is no state to export.")
        blob = self._state.model_dump(mode="json")
        if not include_fetched_entities:
            blob["last_batch"] = None
            blob["tracker"]["ids"] = []
        if not include_filter_values:
            fields = blob["descriptor"]["parameters"].pop("fields", None) or []
            blob["filters_redacted"] = True
            blob["filter_count"] = len(fields)
            if blob.get("pivot"):
                blob["pivot"]["expression"] = None
        logger.debug(f"Exported state for '{self._state.resource}' (mode {self._state.mode}).")
        return blob

    def import_state(self, blob: Mapping[str, Any], fields: Optional[List[str]] = None) -> BaseState:
        """
        Replaces the current walk with one exported earlier.

        :param fields: the filter expressions, required when the blob was
            exported without filter values and the query had any.
        :raises InvalidStateError: the blob does not have a valid structure.
        :raises StructuralStateMismatchError: redacted filters not supplied.
        """
        try:
            state = pagination_state_adapter.validate_python(blob)
        except ValidationError as e:
            logger.warning(f"Rejected state blob: {e}")
            raise InvalidStateError("Invalid structure for state.") from e

        if state.filters_redacted:
            supplied = list(fields or [])
            if len(supplied) != state.filter_count:
                raise StructuralStateMismatchError(
                    f"The state was exported without filter values; {state.filter_count} filter expressions must be supplied, got {len(supplied)}."
                )
            parameters = dict(state.descriptor.parameters)
            if supplied:
                parameters["fields"] = supplied
            state = state.model_copy(
                update={
                    "descriptor": state.descriptor.model_copy(update={"parameters": parameters}),
                    "filters_redacted": False,
                    "filter_count": 0,
                }
            )
        elif fields is not None:
            raise StructuralStateMismatchError("Filter expressions can only be supplied for a state exported without filter values.")

        self._state = state
        logger.info(f"Imported state for '{state.resource}' (mode {state.mode}, {state.tracker.count} fetched).")
        return state

    async def close(self) -> None:
        await self.transport.close()
