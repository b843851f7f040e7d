# entity_sdk/data_access/page_fetcher.py
import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from entity_sdk.clients.base import RestTransport
from entity_sdk.exceptions import MalformedResponseError
from entity_sdk.schemas.pagination import EntityPage
from .ordering import get_entity_id

logger = logging.getLogger("entity_sdk.data_access.page_fetcher")

MAX_BATCH_LIMIT = 1000


def is_boolean_true(value: Any) -> bool:
    """Interprets a 'total' parameter value the way the store does."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return abs(float(value)) >= 1
        except ValueError:
            return value.lower() in ("yes", "true")
    if isinstance(value, (int, float)):
        return abs(value) >= 1
    return bool(value)


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class PageFetcher:
    """
    Issues one listing call to the Entity Store and validates the page
    metadata. No caching, no retries: store errors propagate unchanged.
    """

    def __init__(self, transport: RestTransport, max_batch_limit: int = MAX_BATCH_LIMIT):
        self.transport = transport
        self.max_batch_limit = max_batch_limit

    def prepare_parameters(self, parameters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        prepared: Dict[str, Any] = dict(parameters or {})
        limit = prepared.get("limit")
        if isinstance(limit, (int, float)) and limit > self.max_batch_limit:
            logger.debug(f"Capping limit {limit} to {self.max_batch_limit}.")
            prepared["limit"] = self.max_batch_limit
        # Counting the full result set is expensive for the store; only ask
        # for it when the caller did.
        prepared.setdefault("total", False)
        return prepared

    async def fetch(self, resource: str, parameters: Optional[Mapping[str, Any]] = None) -> EntityPage:
        """
        Fetches one page of entities.

        :raises ServiceCommunicationError: propagated from the transport.
        :raises MalformedResponseError: page metadata or an entity is not as expected.
        """
        prepared = self.prepare_parameters(parameters)
        logger.debug(f"Fetching page of '{resource}' with parameters: {prepared}")
        body = await self.transport.get(resource, prepared)
        page = self._parse_page(body, prepared, f"response from {resource}")
        for entity in page.data:
            if get_entity_id(entity) in (None, ""):
                raise MalformedResponseError(f"One of the entities returned from {resource} resource does not contain 'id'.")
        logger.debug(f"Fetched {page.count} entities from '{resource}' (start {page.start}, limit {page.limit}).")
        return page

    def _parse_page(self, body: Mapping[str, Any], parameters: Mapping[str, Any], description: str) -> EntityPage:
        total_requested = is_boolean_true(parameters.get("total", False))
        required = ["start", "limit", "count", "data"] + (["total"] if total_requested else [])
        for key in required:
            if body.get(key) is None:
                raise MalformedResponseError(f"Unexpected structure in {description}: no '{key}' value found.")
        try:
            page = EntityPage.model_validate(body)
        except ValidationError as e:
            raise MalformedResponseError(f"Unexpected structure in {description}: {e}") from e

        if page.count != len(page.data):
            raise MalformedResponseError(
                f"Unexpected structure in {description}: 'count' value ({page.count}) is not equal to number of values in 'data' ({len(page.data)})."
            )
        expected_start = _as_int(parameters.get("start", 0))
        if page.start != expected_start:
            raise MalformedResponseError(
                f"Unexpected structure in {description}: 'start' value is {page.start} but is expected to be {expected_start}."
            )
        if page.count > page.limit and page.count > 0:
            raise MalformedResponseError(
                f"Unexpected structure in {description}: 'count' value ({page.count}) is larger than 'limit' ({page.limit})."
            )
        # Removals between calls can shrink 'total' below 'start'; an empty page is still exhaustion.
        if page.total is not None and page.count > 0 and page.start + page.count > page.total:
            raise MalformedResponseError(
                f"Unexpected structure in {description}: 'total' property ({page.total}) is smaller than start ({page.start}) + count ({page.count})."
            )
        return page
