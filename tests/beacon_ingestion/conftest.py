import pytest

from src.functions.beacon_ingestion.core.db.repository import TABLE_KEYS, BeaconRepository
from src.shared.batch import RetryPolicy
from tests.fakes import FakeDatastore


@pytest.fixture
def datastore():
    return FakeDatastore(TABLE_KEYS)


@pytest.fixture
def repository(datastore):
    return BeaconRepository(datastore)


@pytest.fixture
def retry_policy():
    async def no_sleep(delay):
        return None

    return RetryPolicy(max_attempts=3, base_delay=0.5, sleep=no_sleep)
