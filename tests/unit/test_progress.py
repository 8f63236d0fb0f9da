"""Test the progress tracker."""

from pathlib import Path

import pytest

from lyracopy.application.progress import ProgressTracker
from lyracopy.domain.models import ControlState, ProgressEvent, StepID, StepStatus


def test_initial_snapshot():
    snapshot = ProgressTracker().snapshot()

    assert snapshot.bytes_done == 0
    assert snapshot.total_bytes is None
    assert snapshot.fraction is None
    assert snapshot.history == ()
    assert snapshot.control_state == ControlState.IDLE
    assert all(status == StepStatus.WAITING for status in snapshot.step_statuses.values())


def test_bytes_done_is_monotonic():
    tracker = ProgressTracker()
    tracker.begin_measurement(10_000)

    for value in (100, 5_000, 4_000, 0, -1, 6_000):
        tracker.apply(ProgressEvent(bytes_done=value))

    assert tracker.snapshot().bytes_done == 6_000


def test_speed_follows_latest_report():
    tracker = ProgressTracker()

    tracker.apply(ProgressEvent(bytes_done=10, speed_bps=500))
    tracker.apply(ProgressEvent(bytes_done=5, speed_bps=300))
    tracker.apply(ProgressEvent(bytes_done=20))

    assert tracker.snapshot().speed_bps == 300


def test_file_events_fill_history():
    tracker = ProgressTracker()
    tracker.apply(ProgressEvent(bytes_done=1_000))

    added = tracker.apply(ProgressEvent(current_file='docs/report.pdf'), source_root=Path('/data/src'))
    snapshot = tracker.snapshot()

    assert added is True
    assert snapshot.current_file == 'docs/report.pdf'
    entry = snapshot.history[-1]
    assert entry.file_name == 'report.pdf'
    assert entry.file_size == 1_000
    assert entry.source_path == str(Path('/data/src') / 'docs/report.pdf')


def test_repeated_file_name_is_not_duplicated():
    tracker = ProgressTracker()

    assert tracker.apply(ProgressEvent(current_file='a/report.pdf'))
    assert not tracker.apply(ProgressEvent(current_file='b/report.pdf'))
    assert tracker.apply(ProgressEvent(current_file='c.txt'))
    assert tracker.apply(ProgressEvent(current_file='a/report.pdf'))

    names = [entry.file_name for entry in tracker.snapshot().history]
    assert names == ['report.pdf', 'c.txt', 'report.pdf']


def test_history_is_capped_fifo():
    tracker = ProgressTracker()

    for i in range(150):
        tracker.apply(ProgressEvent(current_file=f'file_{i}.bin'))

    history = tracker.snapshot().history
    assert len(history) == 100
    assert history[0].file_name == 'file_50.bin'
    assert history[-1].file_name == 'file_149.bin'


def test_custom_history_limit():
    tracker = ProgressTracker(history_limit=3)
    for i in range(5):
        tracker.apply(ProgressEvent(current_file=f'{i}.txt'))

    assert [e.file_name for e in tracker.snapshot().history] == ['2.txt', '3.txt', '4.txt']


def test_invalid_history_limit():
    with pytest.raises(ValueError):
        ProgressTracker(history_limit=0)


def test_zero_total_is_unknown():
    tracker = ProgressTracker()
    tracker.begin_measurement(0)

    assert tracker.snapshot().total_bytes is None


def test_complete_forces_total():
    tracker = ProgressTracker()
    tracker.begin_measurement(2_000)
    tracker.apply(ProgressEvent(bytes_done=1_500))

    tracker.complete()

    snapshot = tracker.snapshot()
    assert snapshot.bytes_done == 2_000
    assert snapshot.fraction == 1.0


def test_show_file_does_not_touch_history():
    tracker = ProgressTracker()

    tracker.show_file('plan/a.txt')

    snapshot = tracker.snapshot()
    assert snapshot.current_file == 'plan/a.txt'
    assert snapshot.history == ()


def test_reset_clears_state_but_keeps_control_state():
    tracker = ProgressTracker()
    tracker.set_control_state(ControlState.RUNNING)
    tracker.begin_measurement(100)
    tracker.apply(ProgressEvent(bytes_done=50, current_file='x'))
    tracker.set_step_status(StepID.COPY_RUN, StepStatus.ERROR)
    tracker.set_error('boom')

    tracker.reset('job-2')

    snapshot = tracker.snapshot()
    assert snapshot.job_id == 'job-2'
    assert snapshot.bytes_done == 0
    assert snapshot.total_bytes is None
    assert snapshot.history == ()
    assert snapshot.error_message is None
    assert snapshot.status_of(StepID.COPY_RUN) == StepStatus.WAITING
    assert snapshot.control_state == ControlState.RUNNING


def test_snapshots_are_independent_copies():
    tracker = ProgressTracker()
    before = tracker.snapshot()

    tracker.set_step_status(StepID.VALIDATE_PATHS, StepStatus.OK)

    assert before.status_of(StepID.VALIDATE_PATHS) == StepStatus.WAITING


def test_observers_receive_snapshots_and_can_unsubscribe():
    tracker = ProgressTracker()
    seen = []
    unsubscribe = tracker.subscribe(seen.append)

    tracker.apply(ProgressEvent(bytes_done=10))
    unsubscribe()
    tracker.apply(ProgressEvent(bytes_done=20))

    assert [s.bytes_done for s in seen] == [10]


def test_failing_observer_does_not_break_updates():
    tracker = ProgressTracker()
    received = []

    def broken(snapshot):
        raise RuntimeError('observer bug')

    tracker.subscribe(broken)
    tracker.subscribe(received.append)
    tracker.apply(ProgressEvent(bytes_done=10))

    assert tracker.snapshot().bytes_done == 10
    assert len(received) == 1


def test_writer_of_superseded_run_is_ignored():
    tracker = ProgressTracker()
    old = tracker.writer(tracker.reset('job-1'))
    old.set_step_status(StepID.COPY_RUN, StepStatus.RUNNING)
    old.apply(ProgressEvent(bytes_done=10, current_file='big.iso'))

    new = tracker.writer(tracker.reset('job-1'))
    old.set_step_status(StepID.COPY_RUN, StepStatus.ERROR)
    old.set_error('cancelled')
    assert old.apply(ProgressEvent(current_file='late.bin')) is False
    new.begin_measurement(500)

    snapshot = tracker.snapshot()
    assert snapshot.status_of(StepID.COPY_RUN) == StepStatus.WAITING
    assert snapshot.current_file is None
    assert snapshot.error_message is None
    assert snapshot.history == ()
    assert snapshot.total_bytes == 500
    assert new.epoch > old.epoch
