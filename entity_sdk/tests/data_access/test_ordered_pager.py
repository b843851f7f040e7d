# entity_sdk/tests/data_access/test_ordered_pager.py
import httpx
import pytest
from respx import MockRouter

from entity_sdk.data_access.batch_manager import BatchedEntityManager
from entity_sdk.exceptions import (
    AmbiguousBoundaryError,
    InvalidParametersError,
    MalformedResponseError,
    UnexpectedOrderError,
    UnsuitableForOrderedFetchError,
)
from entity_sdk.schemas.pagination import OrderField
from entity_sdk.schemas.state import OffsetState, OrderedState, PendingErrorKind
from entity_sdk.tests.conftest import API_URL, PROFILES, PROFILES_URL_PATTERN, ids
from entity_sdk.tests.fake_store import FakeEntityStore

pytestmark = pytest.mark.asyncio


@pytest.fixture
def score_store(store: FakeEntityStore):
    """Builds the store from a list of 'Score' values; IDs follow list order."""
    def _fill(*scores):
        for score in scores:
            store.add(Score=score)
        return store
    return _fill


def _page(*entities, limit=2, start=0) -> dict:
    return {"start": start, "limit": limit, "count": len(entities), "data": list(entities)}


# --- walks ---

async def test_walk_by_unique_id(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    await manager.start_listing(PROFILES, {"limit": 3})

    assert ids(await manager.fetch_next_ordered()) == [4, 5, 6]
    request = birthdate_store.requests[-1]
    assert birthdate_store.sent_fields() == ["ID>3"]
    assert request["orderby"] == "ID"
    assert request["order"] == "asc"
    assert "start" not in request

    assert ids(await manager.fetch_next_ordered()) == [7]
    assert manager.is_exhausted()
    assert manager.distinct_fetched_count() == 7
    assert isinstance(manager.state, OrderedState)

    requests_made = len(birthdate_store.requests)
    assert await manager.fetch_next_ordered() == []
    assert len(birthdate_store.requests) == requests_made


async def test_ordered_limit_override(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    await manager.start_listing(PROFILES, {"limit": 3})
    assert ids(await manager.fetch_next_ordered({"limit": 2})) == [4, 5]
    assert ids(await manager.fetch_next_ordered()) == [6, 7]
    assert birthdate_store.requests[-1]["limit"] == "2"
    assert await manager.fetch_next_ordered() == []
    assert manager.is_exhausted()
    assert manager.distinct_fetched_count() == 7


async def test_walk_by_non_unique_field(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    assert ids(await manager.start_listing(PROFILES, {"orderby": "Birthdate", "limit": 3})) == [7, 6, 5]

    assert ids(await manager.fetch_next_ordered()) == [4, 3]
    assert birthdate_store.sent_fields() == ["Birthdate>=2000-01-03"]
    assert ids(await manager.fetch_next_ordered()) == [2, 1]
    assert not manager.is_exhausted()
    assert await manager.fetch_next_ordered() == []
    assert manager.is_exhausted()
    assert manager.distinct_fetched_count() == 7


async def test_base_filters_are_kept(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    await manager.start_listing(PROFILES, {"fields": ["Email!=2@c.cc"], "limit": 3})
    assert ids(await manager.fetch_next_ordered()) == [5, 6, 7]
    assert birthdate_store.sent_fields() == ["Email!=2@c.cc", "ID>4"]


async def test_descending_order_and_uniqueness_hint(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    await manager.start_listing(PROFILES, {"orderby": "Email", "order": "desc", "limit": 2})

    batch = await manager.fetch_next_ordered()
    assert ids(batch) == [5]
    assert birthdate_store.sent_fields() == ["Email<=6@c.cc"]
    assert birthdate_store.requests[-1]["order"] == "desc"

    assert ids(await manager.fetch_next_ordered(ordered_field_has_unique_values=True)) == [4, 3]
    assert birthdate_store.sent_fields() == ["Email<5@c.cc"]

    batch = await manager.fetch_next_ordered(ordered_field_has_unique_values=False)
    assert [entity["fields"]["Email"] for entity in batch] == ["2@c.cc"]


async def test_offset_then_ordered(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    await manager.start_listing(PROFILES, {"limit": 3})
    await manager.fetch_next()
    assert ids(await manager.fetch_next_ordered()) == [7]
    assert manager.is_exhausted()


async def test_ordered_then_offset_keeps_watermark(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    await manager.start_listing(PROFILES, {"limit": 3})
    await manager.fetch_next_ordered()

    assert ids(await manager.fetch_next()) == [7]
    assert birthdate_store.sent_fields() == ["ID>3"]
    assert birthdate_store.requests[-1]["start"] == "3"
    assert isinstance(manager.state, OffsetState)
    assert manager.distinct_fetched_count() == 7


async def test_delete_does_not_skip_entities(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    await manager.start_listing(PROFILES, {"limit": 3})
    birthdate_store.delete(1)
    assert ids(await manager.fetch_next_ordered()) == [4, 5, 6]


async def test_uniqueness_hint_can_lose_ties(manager: BatchedEntityManager, score_store):
    score_store(1, 1, 2, 2, 3, 4)
    await manager.start_listing(PROFILES, {"orderby": "Score", "limit": 3})
    assert ids(await manager.fetch_next_ordered(ordered_field_has_unique_values=True)) == [5, 6]
    assert manager.is_exhausted()
    assert manager.distinct_fetched_count() == 5


async def test_conservative_walk_keeps_ties(manager: BatchedEntityManager, score_store):
    score_store(1, 1, 2, 2, 3, 4)
    await manager.start_listing(PROFILES, {"orderby": "Score", "limit": 3})
    assert ids(await manager.fetch_next_ordered()) == [4, 5]
    assert ids(await manager.fetch_next_ordered()) == [6]
    assert manager.is_exhausted()
    assert manager.distinct_fetched_count() == 6


# --- boundary runs spanning a whole batch ---

async def test_single_value_batch_blocks_ordered_fetching(manager: BatchedEntityManager, store: FakeEntityStore):
    for email in ("1@c.cc", "2@c.cc", "2@c.cc", "2@c.cc", "2@c.cc", "3@c.cc"):
        store.add(Email=email)
    await manager.start_listing(PROFILES, {"orderby": "Email", "limit": 3})

    assert ids(await manager.fetch_next_ordered()) == [4]
    assert manager.distinct_fetched_count() == 4
    assert manager.state.pending_error.kind == PendingErrorKind.AMBIGUOUS_BOUNDARY

    requests_made = len(store.requests)
    with pytest.raises(AmbiguousBoundaryError, match="cannot be retrieved in an 'ordered' way"):
        await manager.fetch_next_ordered()
    with pytest.raises(AmbiguousBoundaryError):
        await manager.fetch_next_ordered()
    assert len(store.requests) == requests_made

    assert ids(await manager.fetch_next_ordered({"limit": 10}, fall_back_to_unordered=True)) == [5, 6]
    assert store.sent_fields() == ["Email>=2@c.cc"]
    assert store.requests[-1]["start"] == "3"
    assert manager.is_exhausted()
    assert manager.distinct_fetched_count() == 6


async def test_fallback_walks_the_tied_run(manager: BatchedEntityManager, score_store):
    score_store(1, 1, 5, 5, 5, 5, 5, 9)
    await manager.start_listing(PROFILES, {"orderby": "Score", "limit": 3})

    assert ids(await manager.fetch_next_ordered()) == [4, 5]
    assert ids(await manager.fetch_next_ordered(fall_back_to_unordered=True)) == [6, 7, 8]
    assert manager.state.pending_error is None
    assert await manager.fetch_next_ordered() == []
    assert manager.is_exhausted()
    assert manager.distinct_fetched_count() == 8


async def test_first_batch_with_single_value(manager: BatchedEntityManager, score_store):
    score_store(5, 5, 5, 6)
    await manager.start_listing(PROFILES, {"orderby": "Score", "limit": 2})
    with pytest.raises(AmbiguousBoundaryError):
        await manager.fetch_next_ordered()
    assert ids(await manager.fetch_next()) == [3, 4]


# --- failures ---

async def test_store_ignoring_the_watermark(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    await manager.start_listing(PROFILES, {"limit": 3})
    birthdate_store.ignore_filters = True
    with pytest.raises(UnexpectedOrderError, match="first returned 'ID' value is \"1\""):
        await manager.fetch_next_ordered()


async def test_batch_in_wrong_order(manager: BatchedEntityManager, respx_mock: MockRouter):
    respx_mock.get(url__regex=PROFILES_URL_PATTERN).respond(
        200, json=_page({"ID": 1, "fields": {"Score": 5}}, {"ID": 2, "fields": {"Score": 3}})
    )
    await manager.start_listing(PROFILES, {"orderby": "Score", "limit": 2})
    assert manager.state.pending_error.kind == PendingErrorKind.UNEXPECTED_ORDER

    with pytest.raises(UnexpectedOrderError, match="showed decreasing values for 'Score'"):
        await manager.fetch_next_ordered(fall_back_to_unordered=True)
    assert len(respx_mock.calls) == 1


async def test_batch_without_pivot_field(manager: BatchedEntityManager, respx_mock: MockRouter):
    respx_mock.get(url__regex=PROFILES_URL_PATTERN).respond(
        200, json=_page({"ID": 1, "fields": {"Score": 5}}, {"ID": 2, "fields": {}})
    )
    await manager.start_listing(PROFILES, {"orderby": "Score", "limit": 2})
    assert manager.state.pending_error.kind == PendingErrorKind.MALFORMED_ENTITY
    with pytest.raises(MalformedResponseError, match="no 'Score' field"):
        await manager.fetch_next_ordered()


async def test_batch_with_null_pivot_value(manager: BatchedEntityManager, respx_mock: MockRouter):
    respx_mock.get(url__regex=PROFILES_URL_PATTERN).respond(
        200, json=_page({"ID": 1, "fields": {"Score": None}}, {"ID": 2, "fields": {"Score": "5"}})
    )
    assert ids(await manager.start_listing(PROFILES, {"orderby": "Score", "limit": 2})) == [1, 2]
    assert manager.state.pending_error.kind == PendingErrorKind.MALFORMED_ENTITY
    with pytest.raises(MalformedResponseError, match="no 'Score' field"):
        await manager.fetch_next_ordered()


async def test_batch_with_incomparable_pivot_values(manager: BatchedEntityManager, respx_mock: MockRouter):
    respx_mock.get(url__regex=PROFILES_URL_PATTERN).mock(
        side_effect=[
            httpx.Response(200, json=_page({"ID": 1, "fields": {"Score": 5}}, {"ID": 2, "fields": {"Score": "7"}})),
            httpx.Response(200, json=_page({"ID": 3, "fields": {"Score": 8}}, start=2)),
        ]
    )
    await manager.start_listing(PROFILES, {"orderby": "Score", "limit": 2})
    assert manager.state.pending_error.kind == PendingErrorKind.MALFORMED_ENTITY
    assert "cannot be compared" in manager.state.pending_error.message

    with pytest.raises(MalformedResponseError, match="cannot be compared"):
        await manager.fetch_next_ordered()
    assert ids(await manager.fetch_next()) == [3]
    assert manager.is_exhausted()


async def test_ordered_page_with_incomparable_first_value(manager: BatchedEntityManager, respx_mock: MockRouter):
    respx_mock.get(url__regex=PROFILES_URL_PATTERN).mock(
        side_effect=[
            httpx.Response(200, json=_page({"ID": 1, "fields": {"Score": 1}}, {"ID": 2, "fields": {"Score": 2}})),
            httpx.Response(200, json=_page({"ID": 3, "fields": {"Score": "x"}})),
        ]
    )
    await manager.start_listing(PROFILES, {"orderby": "Score", "limit": 2})
    with pytest.raises(UnexpectedOrderError, match="cannot be compared with the starting value"):
        await manager.fetch_next_ordered()


async def test_resource_without_order_field(manager: BatchedEntityManager, respx_mock: MockRouter):
    respx_mock.get(url__regex=rf"{API_URL}/database/3/collections.*").respond(
        200, json=_page({"ID": 1, "fields": {}}, {"ID": 2, "fields": {}})
    )
    await manager.start_listing("database/3/collections", {"limit": 2})
    assert manager.state.pending_error.kind == PendingErrorKind.UNSUITABLE

    with pytest.raises(UnsuitableForOrderedFetchError):
        await manager.fetch_next_ordered(fall_back_to_unordered=True)
    assert len(respx_mock.calls) == 1


async def test_ordered_before_start(manager: BatchedEntityManager):
    with pytest.raises(UnsuitableForOrderedFetchError):
        await manager.fetch_next_ordered()


async def test_ordered_rejects_structural_parameters(manager: BatchedEntityManager, birthdate_store: FakeEntityStore):
    await manager.start_listing(PROFILES, {"limit": 3})
    with pytest.raises(InvalidParametersError):
        await manager.fetch_next_ordered({"orderby": "Email"})
    assert len(birthdate_store.requests) == 1


async def test_configured_order_fields(transport, store: FakeEntityStore):
    for email in ("c@c.cc", "a@c.cc", "b@c.cc"):
        store.add(Email=email)
    manager = BatchedEntityManager(transport, order_fields={"profiles": OrderField(field="Email", unique=True)})

    await manager.start_listing(PROFILES, {"orderby": "Email", "limit": 2})
    assert ids(await manager.fetch_next_ordered()) == [1]
    assert store.sent_fields() == ["Email>b@c.cc"]
