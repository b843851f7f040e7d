# entity_sdk/data_access/offset_pager.py
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from entity_sdk.data_access.tracker import FetchCountTracker
from entity_sdk.exceptions import StructuralStateMismatchError
from entity_sdk.schemas.pagination import Entity, QueryDescriptor
from entity_sdk.schemas.state import BaseState, OffsetState
from .base_pager import BasePager

logger = logging.getLogger("entity_sdk.data_access.offset_pager")


class OffsetPager(BasePager):
    """
    Pages by advancing 'start' with the number of entities already fetched.

    Simple and always applicable, but entities inserted or deleted ahead of
    the cursor during the walk shift positions: some may be skipped or
    delivered twice. OrderedPager avoids the skipping.
    """

    async def start(self, descriptor: QueryDescriptor) -> Tuple[List[Entity], OffsetState]:
        """Fetches the first page of a new walk."""
        logger.info(f"Starting listing of '{descriptor.resource}' with parameters: {descriptor.parameters}")
        page = await self.fetcher.fetch(descriptor.resource, descriptor.parameters)
        fresh = OffsetState(descriptor=descriptor, tracker=FetchCountTracker())
        state = self.settle(
            OffsetState,
            fresh,
            page,
            request_parameters=descriptor.parameters,
            delivered=page.data,
            overrides={},
            pivot=None,
        )
        return page.data, state

    def build_request(self, state: BaseState, overrides: Mapping[str, Any]) -> Dict[str, Any]:
        parameters = {**state.descriptor.parameters, **overrides}
        if state.pivot is not None:
            # Positions are relative to the result set of the last ordered
            # request, so keep its watermark filter and ordering.
            if state.pivot.expression is None:
                raise StructuralStateMismatchError(
                    "The state was exported without filter values; the watermark filter needed to continue by position is missing."
                )
            parameters["orderby"] = state.pivot.field
            parameters["order"] = state.pivot.order
            parameters["fields"] = state.descriptor.fields + [state.pivot.expression]
        parameters["start"] = state.next_start
        return parameters

    async def more(
        self, state: BaseState, extra_parameters: Optional[Mapping[str, Any]] = None, **options: Any
    ) -> Tuple[List[Entity], BaseState]:
        """
        Fetches the next batch by position. Overrides passed here stick for
        all following calls. Returns an empty batch, without a request, once
        the walk is exhausted.

        :raises InvalidParametersError: extra_parameters tries to change start,
            fields, orderby or order.
        """
        if state.all_fetched:
            return [], state
        extra = self.check_extra_parameters(extra_parameters)
        overrides = {**state.overrides, **extra}
        parameters = self.build_request(state, overrides)

        page = await self.fetcher.fetch(state.resource, parameters)
        new_state = self.settle(
            OffsetState,
            state,
            page,
            request_parameters=parameters,
            delivered=page.data,
            overrides=overrides,
            pivot=state.pivot,
        )
        return page.data, new_state
