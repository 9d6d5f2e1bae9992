import pytest

from src.shared.batch import ProgressTracker, format_duration


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "00:00:00"),
        (-5, "00:00:00"),
        (59.9, "00:00:59"),
        (61, "00:01:01"),
        (3725, "01:02:05"),
        (90000, "25:00:00"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_eta_uses_average_rate():
    clock = FakeClock()
    tracker = ProgressTracker(1000, stage="ingest", clock=clock)

    assert tracker.eta_seconds() == 0.0

    clock.now += 100
    tracker.advance(250, succeeded=240, skipped=10)

    assert tracker.elapsed_seconds() == 100
    assert tracker.eta_seconds() == pytest.approx(300)


def test_increment_counts_by_outcome():
    tracker = ProgressTracker(3, stage="recheck", clock=FakeClock())

    tracker.increment(success=True)
    tracker.increment(success=True, skipped=True)
    tracker.increment(success=False)

    stats = tracker.get_stats()
    assert stats["processed"] == 3
    assert stats["successful"] == 1
    assert stats["skipped"] == 1
    assert stats["errors"] == 1
    assert stats["percent"] == 100


def test_should_log_on_count_interval_and_completion():
    clock = FakeClock()
    tracker = ProgressTracker(60, stage="recheck", log_interval=25, log_time_interval=3600, clock=clock)

    assert tracker.should_log() is False

    for _ in range(24):
        tracker.increment()
    assert tracker.should_log() is False

    tracker.increment()
    assert tracker.should_log() is True
    tracker.log_progress()
    assert tracker.should_log() is False

    tracker.advance(35, succeeded=35)
    assert tracker.should_log() is True


def test_should_log_on_time_interval():
    clock = FakeClock()
    tracker = ProgressTracker(1000, stage="ingest", log_interval=500, log_time_interval=30, clock=clock)

    tracker.increment()
    assert tracker.should_log() is False

    clock.now += 31
    assert tracker.should_log() is True


def test_log_progress_includes_extra_stats(caplog):
    clock = FakeClock()
    tracker = ProgressTracker(10, stage="ingest", clock=clock)
    clock.now += 5
    tracker.advance(5, succeeded=4, errors=1)

    with caplog.at_level("INFO"):
        tracker.log_progress(extra_stats={"Batches": "1/2", "Rate": 2.25})

    message = caplog.records[-1].getMessage()
    assert "ingest progress: 5/10 (50.0%)" in message
    assert "Elapsed: 00:00:05" in message
    assert "ETA: 00:00:05" in message
    assert "Errors: 1" in message
    assert "Memory:" in message
    assert "Batches: 1/2" in message
    assert "Rate: 2.2" in message or "Rate: 2.3" in message
