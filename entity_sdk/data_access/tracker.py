# entity_sdk/data_access/tracker.py
import logging
from typing import Iterable, Set, Union

from pydantic import BaseModel, Field

logger = logging.getLogger("entity_sdk.data_access.tracker")

EntityId = Union[int, str]


class FetchCountTracker(BaseModel):
    """
    Counts distinct entities handed to the caller during one walk.

    Ordered fetching re-requests the entities at a batch boundary, so the
    sum of page sizes can overcount; the tracker counts IDs instead.
    """

    count: int = Field(0, ge=0, description="Distinct entities delivered so far.")
    ids: Set[EntityId] = Field(
        default_factory=set, description="IDs already counted (may be dropped from exports)."
    )

    def track(self, entity_ids: Iterable[EntityId]) -> int:
        """Registers delivered IDs; returns how many of them were new."""
        added = 0
        for entity_id in entity_ids:
            if entity_id in self.ids:
                continue
            self.ids.add(entity_id)
            added += 1
        self.count += added
        logger.debug(f"Tracker: {added} new entities counted, {self.count} in total.")
        return added

    def reset(self) -> None:
        self.count = 0
        self.ids = set()
