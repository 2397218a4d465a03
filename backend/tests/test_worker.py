"""Worker: claiming, restart recovery and the stale-job watchdog."""

import asyncio
from pathlib import Path

import pytest

from conftest import make_request
from models.job import JobStatus
from services import store
from services.admission import AdmissionGate
from services.worker import INTERRUPTED_TEXT, TIMED_OUT_TEXT, PipelineWorker


class Recorder:
    def __init__(self) -> None:
        self.requests = []

    async def __call__(self, request) -> None:
        self.requests.append(request)
        store.complete_job(request.job_id, video_url="https://cdn.test/final.mp4", duration_seconds=5)


def admit(tmp_path: Path, job_id: str) -> None:
    store.set_credits("owner-1", store.get_credits("owner-1") + 1)
    AdmissionGate(tmp_path / "spool", lambda _: None).persist(make_request(job_id=job_id))


@pytest.mark.anyio
async def test_process_runs_job_and_cleans_up(tmp_path: Path) -> None:
    admit(tmp_path, "job-1")
    recorder = Recorder()
    worker = PipelineWorker(recorder)

    assert await worker.process("job-1") is True

    assert [r.job_id for r in recorder.requests] == ["job-1"]
    assert recorder.requests[0].photo_groups[0].images[0].data == b"jpeg-0-0"
    assert store.get_task_state("job-1") == "done"
    assert list((tmp_path / "spool").iterdir()) == []


@pytest.mark.anyio
async def test_task_is_claimed_only_once(tmp_path: Path) -> None:
    admit(tmp_path, "job-1")
    recorder = Recorder()
    worker = PipelineWorker(recorder)

    first, second = await asyncio.gather(worker.process("job-1"), worker.process("job-1"))

    assert sorted([first, second]) == [False, True]
    assert len(recorder.requests) == 1


@pytest.mark.anyio
async def test_missing_spool_fails_the_job(tmp_path: Path) -> None:
    admit(tmp_path, "job-1")
    for spooled in (tmp_path / "spool").iterdir():
        for path in spooled.iterdir():
            path.unlink()
    recorder = Recorder()

    await PipelineWorker(recorder).process("job-1")

    job = store.get_job("job-1")
    assert job.status is JobStatus.FAILED
    assert job.error_text.startswith("Could not load request")
    assert recorder.requests == []
    assert store.get_task_state("job-1") == "done"


def test_recover_fails_interrupted_and_requeues_waiting(tmp_path: Path) -> None:
    admit(tmp_path, "job-running")
    admit(tmp_path, "job-waiting")
    store.claim_task("job-running")
    worker = PipelineWorker(Recorder())

    requeued = worker.recover()

    assert requeued == ["job-waiting"]
    assert worker.queue.get_nowait() == "job-waiting"
    interrupted = store.get_job("job-running")
    assert interrupted.status is JobStatus.FAILED
    assert interrupted.error_text == INTERRUPTED_TEXT
    assert store.get_task_state("job-running") == "done"
    assert store.get_job("job-waiting").status is JobStatus.PROCESSING


def test_watchdog_fails_only_silent_running_jobs(tmp_path: Path) -> None:
    admit(tmp_path, "job-stuck")
    admit(tmp_path, "job-done")
    store.claim_task("job-stuck")
    store.claim_task("job-done")
    store.complete_job("job-done", video_url="https://cdn.test/done.mp4", duration_seconds=5)

    # a negative timeout puts the cutoff in the future, so every heartbeat is stale
    failed = PipelineWorker(Recorder(), stale_after_seconds=-60).sweep_stale()

    assert failed == ["job-stuck"]
    assert store.get_job("job-stuck").error_text == TIMED_OUT_TEXT
    assert store.get_task_state("job-stuck") == "done"
    assert store.get_job("job-done").status is JobStatus.COMPLETED


def test_watchdog_never_fails_jobs_waiting_in_the_queue(tmp_path: Path) -> None:
    admit(tmp_path, "job-waiting")

    assert PipelineWorker(Recorder(), stale_after_seconds=-60).sweep_stale() == []
    assert store.get_job("job-waiting").status is JobStatus.PROCESSING
    assert store.get_task_state("job-waiting") == "queued"


def test_watchdog_leaves_jobs_with_a_recent_heartbeat_alone(tmp_path: Path) -> None:
    admit(tmp_path, "job-1")
    store.claim_task("job-1")
    store.heartbeat_task("job-1")

    assert PipelineWorker(Recorder(), stale_after_seconds=3600).sweep_stale() == []
    assert store.get_job("job-1").status is JobStatus.PROCESSING
    assert store.get_task_state("job-1") == "running"


@pytest.mark.anyio
async def test_timed_out_job_is_not_run_again(tmp_path: Path) -> None:
    admit(tmp_path, "job-1")
    store.claim_task("job-1")
    PipelineWorker(Recorder(), stale_after_seconds=-60).sweep_stale()
    recorder = Recorder()

    assert await PipelineWorker(recorder).process("job-1") is False

    assert recorder.requests == []
    assert store.get_job("job-1").error_text == TIMED_OUT_TEXT


@pytest.mark.anyio
async def test_queued_task_of_a_failed_job_is_closed_not_claimed(tmp_path: Path) -> None:
    admit(tmp_path, "job-1")
    store.fail_job("job-1", "Cancelled")
    recorder = Recorder()

    assert await PipelineWorker(recorder).process("job-1") is False

    assert recorder.requests == []
    assert store.get_task_state("job-1") == "done"
    assert store.get_job("job-1").status is JobStatus.FAILED


@pytest.mark.anyio
async def test_started_worker_drains_the_queue(tmp_path: Path) -> None:
    admit(tmp_path, "job-1")
    recorder = Recorder()
    worker = PipelineWorker(recorder, concurrency=2, watchdog_interval=3600)

    await worker.start()
    try:
        admit(tmp_path, "job-2")
        worker.enqueue("job-2")
        await asyncio.wait_for(worker.queue.join(), timeout=5)
    finally:
        await worker.stop()

    assert sorted(r.job_id for r in recorder.requests) == ["job-1", "job-2"]
    assert store.get_job("job-2").status is JobStatus.COMPLETED


@pytest.mark.anyio
async def test_crashing_job_does_not_stop_the_worker(tmp_path: Path) -> None:
    admit(tmp_path, "job-1")
    admit(tmp_path, "job-2")
    seen = []

    async def flaky(request) -> None:
        seen.append(request.job_id)
        if request.job_id == "job-1":
            raise RuntimeError("boom")

    worker = PipelineWorker(flaky, concurrency=1, watchdog_interval=3600)
    await worker.start()
    try:
        await asyncio.wait_for(worker.queue.join(), timeout=5)
    finally:
        await worker.stop()

    assert seen == ["job-1", "job-2"]
    assert store.get_task_state("job-1") == "done"
