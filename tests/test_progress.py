from __future__ import annotations

import threading

from drivechat.progress import NOT_STARTED, ProgressState, ProgressTracker


def test_get_without_updates_returns_not_started_record() -> None:
    tracker = ProgressTracker()

    record = tracker.get("unknown-session")

    assert record is NOT_STARTED
    assert record.percentage == 0
    assert record.status == "Not started"
    assert record.files_processed == 0
    assert record.total_files == 0
    assert record.total_steps == 10
    assert not tracker.has("unknown-session")


def test_update_computes_floor_percentage_and_camel_case_payload() -> None:
    tracker = ProgressTracker()
    tracker.start("s1")

    record = tracker.update("s1", 7, 10, "Indexing", current_file="a.txt", files_processed=2, total_files=3)

    assert record.percentage == 70
    assert record.to_dict() == {
        "currentStep": 7,
        "totalSteps": 10,
        "status": "Indexing",
        "currentFile": "a.txt",
        "filesProcessed": 2,
        "totalFiles": 3,
        "percentage": 70,
        "state": "running",
    }
    assert ProgressTracker().update("s2", 1, 3, "x").percentage == 33


def test_decreasing_step_is_clamped_within_a_run() -> None:
    tracker = ProgressTracker()
    tracker.start("s1")
    tracker.update("s1", 5, 10, "Processing")

    record = tracker.update("s1", 2, 10, "Late retry")

    assert record.current_step == 5
    assert record.status == "Late retry"


def test_start_resets_a_finished_run() -> None:
    tracker = ProgressTracker()
    tracker.update("s1", 10, 10, "Done", state=ProgressState.READY)

    record = tracker.start("s1")

    assert record.current_step == 0
    assert record.state is ProgressState.RUNNING


def test_file_counts_carry_forward_and_are_capped() -> None:
    tracker = ProgressTracker()
    tracker.start("s1")
    tracker.update("s1", 4, 10, "Found", files_processed=0, total_files=3)
    tracker.update("s1", 5, 10, "Processed", files_processed=2)

    record = tracker.update("s1", 7, 10, "Indexing")
    assert record.files_processed == 2
    assert record.total_files == 3

    record = tracker.update("s1", 7, 10, "Too many", files_processed=9)
    assert record.files_processed == 3


def test_fail_keeps_current_step() -> None:
    tracker = ProgressTracker()
    tracker.start("s1")
    tracker.update("s1", 3, 10, "Scanning")

    record = tracker.fail("s1", "ERROR: boom")

    assert record.current_step == 3
    assert record.state is ProgressState.ERROR
    assert record.status == "ERROR: boom"


def test_concurrent_writers_never_regress_percentage() -> None:
    tracker = ProgressTracker()
    tracker.start("s1")
    observed: list[int] = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            observed.append(tracker.get("s1").percentage)

    def writer(steps: range) -> None:
        for step in steps:
            tracker.update("s1", step, 10, f"step {step}")

    poller = threading.Thread(target=reader)
    poller.start()
    writers = [threading.Thread(target=writer, args=(range(0, 11),)) for _ in range(4)]
    for thread in writers:
        thread.start()
    for thread in writers:
        thread.join()
    stop.set()
    poller.join()

    observed.append(tracker.get("s1").percentage)
    assert observed == sorted(observed)
    assert observed[-1] == 100
