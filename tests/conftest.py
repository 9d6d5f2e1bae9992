import pytest

from tests.fakes import FakeDatastore


@pytest.fixture
def meta_datastore():
    return FakeDatastore({"ingestion_meta": "key"})
