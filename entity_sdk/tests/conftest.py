# entity_sdk/tests/conftest.py
import re
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from respx import MockRouter

from entity_sdk.clients.base import RestTransport
from entity_sdk.data_access.batch_manager import BatchedEntityManager
from entity_sdk.tests.fake_store import FakeEntityStore

BASE_URL = "https://api.test.local"
API_URL = f"{BASE_URL}/v2"
DATABASE_ID = 3
PROFILES = f"database/{DATABASE_ID}/profiles"
PROFILES_URL_PATTERN = rf"^{re.escape(API_URL)}/database/\d+/profiles"


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def transport(http_client: httpx.AsyncClient) -> RestTransport:
    return RestTransport(base_url=BASE_URL, access_token="test-token", http_client=http_client)


@pytest.fixture
def manager(transport: RestTransport) -> BatchedEntityManager:
    return BatchedEntityManager(transport)


@pytest.fixture
def store(respx_mock: MockRouter) -> FakeEntityStore:
    """Empty fake store answering profile listings."""
    fake_store = FakeEntityStore()
    respx_mock.get(url__regex=PROFILES_URL_PATTERN).mock(side_effect=fake_store.handle)
    return fake_store


@pytest.fixture
def birthdate_store(store: FakeEntityStore) -> FakeEntityStore:
    """Seven profiles; birthdates descend while IDs ascend."""
    for number in range(1, 8):
        store.add(Email=f"{number}@c.cc", Birthdate=f"2000-01-0{8 - number}")
    return store


def ids(entities) -> list:
    return [entity["ID"] for entity in entities]
