import asyncio

import pytest

from src.functions.beacon_ingestion.core.db.repository import (
    BLOCKS_TABLE,
    LAST_PROCESSED_SLOT,
    META_TABLE,
    TABLE_KEYS,
    BeaconRepository,
)
from src.functions.beacon_ingestion.core.pipelines.ingestion import BatchIngestionDriver
from src.shared.batch import CancellationToken, CheckpointStore, WorkStatus
from tests.fakes import FakeBeaconClient, FakeDatastore, make_block


def _blocks(start, end, missing=()):
    return {
        slot: make_block(slot % 97, "dappnode" if slot % 3 == 0 else "geth")
        for slot in range(start, end + 1)
        if slot not in missing
    }


def _driver(client, repository, retry_policy, **kwargs):
    checkpoint = CheckpointStore(repository.datastore, LAST_PROCESSED_SLOT, table=META_TABLE)
    kwargs.setdefault("batch_size", 100)
    kwargs.setdefault("concurrency", 8)
    return BatchIngestionDriver(client, repository, checkpoint, retry_policy=retry_policy, **kwargs)


def _checkpoint_value(datastore):
    row = datastore.keyed[META_TABLE].get(LAST_PROCESSED_SLOT)
    return int(row["value"]) if row else None


def test_iter_batches_covers_range(repository, retry_policy):
    driver = _driver(FakeBeaconClient(), repository, retry_policy, batch_size=500)

    assert list(driver.iter_batches(0, 1199)) == [(0, 499), (500, 999), (1000, 1199)]
    assert list(driver.iter_batches(7, 7)) == [(7, 7)]
    assert list(driver.iter_batches(8, 7)) == []


def test_ingest_stores_blocks_and_commits_each_batch(datastore, repository, retry_policy):
    client = FakeBeaconClient(blocks=_blocks(0, 249, missing={5, 120}))
    driver = _driver(client, repository, retry_policy)

    commits = []
    real_commit = driver.checkpoint.commit

    async def tracking_commit(value):
        commits.append(value)
        return await real_commit(value)

    driver.checkpoint.commit = tracking_commit

    summary = asyncio.run(driver.ingest(0, 249))

    assert commits == [99, 199, 249]
    assert _checkpoint_value(datastore) == 249
    assert summary.complete is True
    assert summary.total_batches == 3
    assert summary.batches_completed == 3
    assert summary.processed == 250
    assert summary.stored == 248
    assert summary.skipped == 2
    assert summary.failed == 0
    assert len(datastore.rows(BLOCKS_TABLE)) == 248
    assert all(count == 1 for count in client.block_calls.values())
    assert datastore.keyed[BLOCKS_TABLE][3] == {"slot": 3, "proposer_index": 3, "graffiti": "dappnode"}


def test_empty_range_is_noop(datastore, repository, retry_policy):
    summary = asyncio.run(_driver(FakeBeaconClient(), repository, retry_policy).ingest(10, 9))

    assert summary.total_slots == 0
    assert summary.total_batches == 0
    assert _checkpoint_value(datastore) is None


def test_resume_matches_single_run(retry_policy):
    blocks = _blocks(0, 1999, missing={17, 1500})

    single_store = FakeDatastore(TABLE_KEYS)
    asyncio.run(
        _driver(FakeBeaconClient(blocks), BeaconRepository(single_store), retry_policy, batch_size=250).ingest(0, 1999)
    )

    split_store = FakeDatastore(TABLE_KEYS)
    split_repo = BeaconRepository(split_store)
    asyncio.run(_driver(FakeBeaconClient(blocks), split_repo, retry_policy, batch_size=250).ingest(0, 999))
    resume_from = _checkpoint_value(split_store) + 1
    asyncio.run(_driver(FakeBeaconClient(blocks), split_repo, retry_policy, batch_size=250).ingest(resume_from, 1999))

    assert resume_from == 1000
    assert split_store.keyed[BLOCKS_TABLE] == single_store.keyed[BLOCKS_TABLE]
    assert _checkpoint_value(split_store) == _checkpoint_value(single_store) == 1999


def test_reprocessing_a_slot_is_idempotent(datastore, repository, retry_policy):
    client = FakeBeaconClient(blocks=_blocks(0, 9))
    driver = _driver(client, repository, retry_policy)

    asyncio.run(driver.process_slot(4))
    first = dict(datastore.keyed[BLOCKS_TABLE])
    asyncio.run(driver.process_slot(4))

    assert datastore.keyed[BLOCKS_TABLE] == first
    assert len(datastore.rows(BLOCKS_TABLE)) == 1


def test_transient_failures_are_retried(datastore, repository, retry_policy):
    client = FakeBeaconClient(blocks=_blocks(0, 9))
    client.flaky[("slot", 3)] = 2

    summary = asyncio.run(_driver(client, repository, retry_policy).ingest(0, 9))

    assert client.block_calls[3] == 3
    assert summary.failed == 0
    assert summary.complete is True


def test_absent_slot_is_single_attempt_and_skipped(repository, retry_policy):
    client = FakeBeaconClient(blocks={})

    result = asyncio.run(_driver(client, repository, retry_policy).process_slot(12))

    assert result.status is WorkStatus.SKIPPED
    assert client.block_calls[12] == 1


def test_failed_slots_do_not_stop_ingestion(datastore, repository, retry_policy):
    client = FakeBeaconClient(blocks=_blocks(0, 299))
    client.fail_slots({150, 170})

    summary = asyncio.run(_driver(client, repository, retry_policy).ingest(0, 299))

    # Every batch runs and commits; the failed slots get one more pass at the end
    assert client.block_calls[150] == 2 * retry_policy.max_attempts
    assert client.block_calls[299] == 1
    assert summary.batches_completed == 3
    assert summary.last_committed_slot == 299
    assert summary.complete is True
    assert summary.failed == 2
    assert summary.failed_slots == [150, 170]
    assert summary.recovered == 0
    assert summary.stored == 298
    assert _checkpoint_value(datastore) == 299
    assert 150 not in datastore.keyed[BLOCKS_TABLE]


def test_retry_pass_recovers_slots_that_fail_in_their_batch(datastore, repository, retry_policy):
    client = FakeBeaconClient(blocks=_blocks(0, 199, missing={120}))
    client.flaky[("slot", 100)] = retry_policy.max_attempts
    client.flaky[("slot", 120)] = retry_policy.max_attempts

    summary = asyncio.run(_driver(client, repository, retry_policy).ingest(0, 199))

    assert client.block_calls[100] == retry_policy.max_attempts + 1
    assert summary.failed == 0
    assert summary.failed_slots == []
    assert summary.recovered == 2
    assert summary.stored == 199
    assert summary.skipped == 1
    assert datastore.keyed[BLOCKS_TABLE][100]["proposer_index"] == 100 % 97


def test_persistence_failure_counts_as_failed(datastore, repository, retry_policy):
    datastore.failing_keys.add((BLOCKS_TABLE, 42))
    client = FakeBeaconClient(blocks=_blocks(0, 99))

    summary = asyncio.run(_driver(client, repository, retry_policy).ingest(0, 99))

    assert summary.failed == 1
    assert summary.failed_slots == [42]
    assert _checkpoint_value(datastore) == 99


def test_checkpoint_is_monotonic_across_runs(datastore, repository, retry_policy):
    client = FakeBeaconClient(blocks=_blocks(0, 399))

    asyncio.run(_driver(client, repository, retry_policy).ingest(0, 399))
    summary = asyncio.run(_driver(client, repository, retry_policy).ingest(0, 99))

    assert _checkpoint_value(datastore) == 399
    assert summary.last_committed_slot is None


def test_cancellation_mid_batch_does_not_commit_that_batch(datastore, repository, retry_policy):
    token = CancellationToken()
    client = FakeBeaconClient(blocks=_blocks(0, 399))

    def on_block(slot):
        if slot == 150:
            token.cancel("SIGTERM")

    client.on_block = on_block

    summary = asyncio.run(_driver(client, repository, retry_policy, cancel_token=token).ingest(0, 399))

    assert summary.cancelled is True
    assert summary.complete is False
    assert summary.batches_completed == 1
    assert _checkpoint_value(datastore) == 99
    assert max(client.block_calls) < 200


def test_cancellation_before_start_processes_nothing(datastore, repository, retry_policy):
    token = CancellationToken()
    token.cancel()
    client = FakeBeaconClient(blocks=_blocks(0, 99))

    summary = asyncio.run(_driver(client, repository, retry_policy, cancel_token=token).ingest(0, 99))

    assert summary.cancelled is True
    assert summary.processed == 0
    assert not client.block_calls
    assert _checkpoint_value(datastore) is None


def test_rejects_non_positive_batch_size(repository, retry_policy):
    with pytest.raises(ValueError):
        _driver(FakeBeaconClient(), repository, retry_policy, batch_size=0)
