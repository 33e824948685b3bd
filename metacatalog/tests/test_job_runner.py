from __future__ import annotations

import threading

import pytest

pytestmark = pytest.mark.unit

from metacatalog.core.errors import Conflict, NotFound
from metacatalog.platform.jobs import (
    KIND_EXPORT,
    KIND_IMPORT,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RUNNING,
    BulkJobRunner,
    JobRunnerConfig,
    JobStore,
)
from metacatalog.platform.jobs.models import BulkJob


@pytest.fixture()
def runner():
    runner = BulkJobRunner(JobRunnerConfig(max_workers=2))
    yield runner
    runner.shutdown(wait=True)


def test_job_goes_from_running_to_completed(runner):
    started = threading.Event()
    release = threading.Event()

    def body(cancel):
        started.set()
        release.wait(5)
        return {"csv": "name\n"}

    job_id = runner.submit(body, KIND_EXPORT, "user")
    assert started.wait(5)
    assert runner.status(job_id).state == STATUS_RUNNING

    release.set()
    job = runner.wait(job_id, timeout=5)
    assert job.state == STATUS_COMPLETED
    assert job.result == {"csv": "name\n"}
    assert job.finished_at is not None


def test_exception_in_job_marks_it_failed(runner):
    def body(cancel):
        raise ValueError("bad payload")

    job = runner.wait(runner.submit(body, KIND_IMPORT, "user"), timeout=5)

    assert job.state == STATUS_FAILED
    assert job.error == "bad payload"
    assert job.result is None


def test_each_submission_is_its_own_job(runner):
    calls = []
    lock = threading.Lock()

    def body(cancel):
        with lock:
            calls.append(1)
        return len(calls)

    first = runner.submit(body, KIND_IMPORT)
    second = runner.submit(body, KIND_IMPORT)

    assert first != second
    runner.wait(first, timeout=5)
    runner.wait(second, timeout=5)
    assert len(calls) == 2


def test_cancel_sets_the_event_the_job_polls(runner):
    started = threading.Event()

    def body(cancel):
        started.set()
        return "cancelled" if cancel.wait(5) else "finished"

    job_id = runner.submit(body, KIND_IMPORT)
    started.wait(5)
    assert runner.cancel(job_id).cancel_requested

    job = runner.wait(job_id, timeout=5)
    assert job.state == STATUS_COMPLETED
    assert job.result == "cancelled"


def test_cancelling_a_finished_job_changes_nothing(runner):
    job_id = runner.submit(lambda cancel: 42, KIND_EXPORT)
    runner.wait(job_id, timeout=5)

    job = runner.cancel(job_id)

    assert job.state == STATUS_COMPLETED
    assert not job.cancel_requested
    assert job.result == 42


def test_purge_removes_finished_jobs_only(runner):
    release = threading.Event()
    running = runner.submit(lambda cancel: release.wait(5), KIND_IMPORT)
    done = runner.submit(lambda cancel: "ok", KIND_EXPORT)
    runner.wait(done, timeout=5)

    runner.purge(done)
    with pytest.raises(NotFound):
        runner.status(done)
    with pytest.raises(Conflict):
        runner.purge(running)

    release.set()
    runner.wait(running, timeout=5)


def test_unknown_job_is_not_found(runner):
    with pytest.raises(NotFound):
        runner.status("missing")


def test_terminal_results_are_immutable():
    store = JobStore()
    store.insert(BulkJob(job_id="j1", kind=KIND_IMPORT))
    store.mark_running("j1")
    store.complete("j1", "first")

    store.fail("j1", "late failure")
    store.complete("j1", "second")

    job = store.get("j1")
    assert job.state == STATUS_COMPLETED
    assert job.result == "first"
    assert job.error is None


def test_store_hands_out_copies():
    store = JobStore()
    store.insert(BulkJob(job_id="j1", kind=KIND_EXPORT))

    copy = store.get("j1")
    copy.state = STATUS_FAILED

    assert store.get("j1").state == STATUS_PENDING


def test_config_reads_worker_count_from_env(monkeypatch):
    monkeypatch.setenv("BULK_JOB_WORKERS", "7")

    assert JobRunnerConfig.from_env().max_workers == 7
