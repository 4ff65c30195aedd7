import queue
import re
import threading
from urllib.parse import parse_qs

import httpx
import orjson
import pytest

from esp.jobs.queue import BackgroundTaskQueue
from esp.jobs.service import canonical_import_job, wikidata_staging_job
from esp.jobs.worker import QueuedWorker


def _noop(cancel):
    return None


def test_enqueue_rejects_non_callable():
    with pytest.raises(TypeError):
        BackgroundTaskQueue().enqueue("not a job")


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        BackgroundTaskQueue(capacity=0)


def test_enqueue_blocks_when_full_until_space_frees():
    task_queue = BackgroundTaskQueue(capacity=1, poll_seconds=0.05)
    task_queue.enqueue(_noop)
    assert task_queue.full()

    enqueued = threading.Event()

    def producer():
        task_queue.enqueue(_noop)
        enqueued.set()

    thread = threading.Thread(target=producer, daemon=True)
    thread.start()
    assert not enqueued.wait(0.2)

    assert task_queue.dequeue(threading.Event()) is _noop
    assert enqueued.wait(2)
    thread.join(2)


def test_enqueue_timeout_raises_full():
    task_queue = BackgroundTaskQueue(capacity=1)
    task_queue.enqueue(_noop)
    with pytest.raises(queue.Full):
        task_queue.enqueue(_noop, timeout=0.05)


def test_dequeue_returns_none_once_cancelled():
    cancel = threading.Event()
    cancel.set()
    assert BackgroundTaskQueue(poll_seconds=0.01).dequeue(cancel) is None


def test_worker_runs_items_in_order():
    task_queue = BackgroundTaskQueue(capacity=10, poll_seconds=0.05)
    seen = []
    for i in range(5):
        task_queue.enqueue(lambda cancel, i=i: seen.append(i))

    worker = QueuedWorker(task_queue)
    worker.start()
    task_queue.join()
    worker.stop(timeout=2)

    assert seen == [0, 1, 2, 3, 4]
    assert worker.processed == 5


def test_worker_survives_failing_item():
    task_queue = BackgroundTaskQueue(capacity=10, poll_seconds=0.05)
    ran = []

    def boom(cancel):
        raise RuntimeError("boom")

    worker = QueuedWorker(task_queue)
    worker.start()
    task_queue.enqueue(boom)
    task_queue.enqueue(lambda cancel: ran.append("after"))
    task_queue.join()

    assert worker.is_alive()
    worker.stop(timeout=2)
    assert ran == ["after"]
    assert worker.failed == 1
    assert worker.processed == 1


def test_stop_cancels_running_item():
    task_queue = BackgroundTaskQueue(capacity=10, poll_seconds=0.05)
    started = threading.Event()
    observed = []

    def long_job(cancel):
        started.set()
        observed.append(cancel.wait(5))

    worker = QueuedWorker(task_queue)
    worker.start()
    task_queue.enqueue(long_job)
    assert started.wait(2)

    worker.stop(timeout=2)

    assert not worker.is_alive()
    assert observed == [True]


def test_worker_exits_when_idle_and_stopped():
    worker = QueuedWorker(BackgroundTaskQueue(poll_seconds=0.05))
    worker.start()
    worker.stop(timeout=2)
    assert not worker.is_alive()


def test_start_twice_raises():
    worker = QueuedWorker(BackgroundTaskQueue(poll_seconds=0.05))
    worker.start()
    try:
        with pytest.raises(RuntimeError):
            worker.start()
    finally:
        worker.stop(timeout=2)


def test_staging_job_runs_on_worker(repository, settings, binding):
    def handler(request):
        query = parse_qs(request.content.decode())["query"][0]
        rows = [binding(qid="Q1"), binding(qid="Q2")] if re.search(r"OFFSET 0$", query) else []
        return httpx.Response(200, content=orjson.dumps({"results": {"bindings": rows}}))

    task_queue = BackgroundTaskQueue(capacity=2, poll_seconds=0.05)
    worker = QueuedWorker(task_queue)
    worker.start()
    task_queue.enqueue(
        wikidata_staging_job(
            settings,
            repository_factory=lambda s: repository,
            transport=httpx.MockTransport(handler),
        )
    )
    task_queue.join()
    worker.stop(timeout=2)

    assert worker.failed == 0
    assert {r.external_id for r in repository.staged.values()} == {"Q1", "Q2"}


def test_canonical_import_job_isolates_fetch_failure(repository, settings):
    def handler(request):
        return httpx.Response(500, text="down")

    task_queue = BackgroundTaskQueue(capacity=2, poll_seconds=0.05)
    worker = QueuedWorker(task_queue)
    worker.start()
    task_queue.enqueue(
        canonical_import_job(
            settings,
            repository_factory=lambda s: repository,
            transport=httpx.MockTransport(handler),
        )
    )
    task_queue.enqueue(lambda cancel: None)
    task_queue.join()
    worker.stop(timeout=2)

    assert worker.failed == 1
    assert worker.processed == 1
    assert [run["status"] for run in repository.runs.values()] == ["failed"]
