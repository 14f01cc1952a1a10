import threading
import time
from functools import partial

import pytest

from domains.voice_memos.ingestion_queue import IngestionQueue
from domains.voice_memos.scanner import AudioFileFilter, list_audio_files


class RecordingProcessor:
    """Records processing order and the peak number of concurrent files."""

    def __init__(self):
        self.started: list[str] = []
        self.gates: dict[str, threading.Event] = {}
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def hold(self, name: str) -> threading.Event:
        gate = threading.Event()
        self.gates[name] = gate
        return gate

    def __call__(self, path: str):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.started.append(path)
        gate = self.gates.get(path.rsplit("/", 1)[-1])
        if gate is not None:
            gate.wait(5)
        time.sleep(0.01)
        with self._lock:
            self.active -= 1

    def names(self) -> list[str]:
        return [p.rsplit("/", 1)[-1] for p in self.started]


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def processor():
    return RecordingProcessor()


@pytest.fixture
def ingestion_queue(processor):
    q = IngestionQueue(
        process_file=processor,
        list_files=partial(list_audio_files, audio_filter=AudioFileFilter()),
    )
    yield q
    q.close()


def test_single_flight_and_fifo_under_rapid_notifications(tmp_path, processor, ingestion_queue):
    assert ingestion_queue.start_session(tmp_path, timeout=5) == 0
    gate = processor.hold("a.m4a")

    (tmp_path / "a.m4a").write_bytes(b"a")
    ingestion_queue.notify_changed()
    assert wait_for(lambda: processor.names() == ["a.m4a"])

    (tmp_path / "b.m4a").write_bytes(b"b")
    (tmp_path / "c.m4a").write_bytes(b"c")
    threads = [threading.Thread(target=ingestion_queue.notify_changed) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    time.sleep(0.1)
    assert processor.names() == ["a.m4a"]
    status = ingestion_queue.status(timeout=5)
    assert status.active_path.endswith("a.m4a")
    assert [p.rsplit("/", 1)[-1] for p in status.pending] == ["b.m4a", "c.m4a"]

    gate.set()
    assert ingestion_queue.wait_until_idle(timeout=5)

    assert processor.names() == ["a.m4a", "b.m4a", "c.m4a"]
    assert processor.peak == 1


def test_baseline_files_are_never_enqueued(tmp_path, processor, ingestion_queue):
    (tmp_path / "old.m4a").write_bytes(b"old")
    (tmp_path / "older.wav").write_bytes(b"older")

    assert ingestion_queue.start_session(tmp_path, timeout=5) == 2

    (tmp_path / "new.m4a").write_bytes(b"new")
    for _ in range(5):
        ingestion_queue.notify_changed()
    assert ingestion_queue.wait_until_idle(timeout=5)

    assert processor.names() == ["new.m4a"]


def test_new_file_is_enqueued_once_across_notifications(tmp_path, processor, ingestion_queue):
    ingestion_queue.start_session(tmp_path, timeout=5)
    (tmp_path / "memo.m4a").write_bytes(b"1")

    ingestion_queue.notify_changed()
    assert ingestion_queue.wait_until_idle(timeout=5)

    # Same path rewritten later is still known for this session
    (tmp_path / "memo.m4a").write_bytes(b"12")
    ingestion_queue.notify_changed()
    assert ingestion_queue.wait_until_idle(timeout=5)

    assert processor.names() == ["memo.m4a"]


def test_stop_drops_pending_and_lets_in_flight_finish(tmp_path, processor, ingestion_queue):
    ingestion_queue.start_session(tmp_path, timeout=5)
    gate = processor.hold("a.m4a")
    for name in ("a.m4a", "b.m4a"):
        (tmp_path / name).write_bytes(b"x")
    ingestion_queue.notify_changed()
    assert wait_for(lambda: processor.names() == ["a.m4a"])

    ingestion_queue.stop_session(timeout=5)
    status = ingestion_queue.status(timeout=5)
    assert not status.watching
    assert status.pending == []
    assert status.known_count == 0

    (tmp_path / "c.m4a").write_bytes(b"x")
    ingestion_queue.notify_changed()

    gate.set()
    assert ingestion_queue.wait_until_idle(timeout=5)
    assert processor.names() == ["a.m4a"]


def test_restart_takes_a_new_baseline(tmp_path, processor, ingestion_queue):
    ingestion_queue.start_session(tmp_path, timeout=5)
    (tmp_path / "first.m4a").write_bytes(b"x")
    ingestion_queue.notify_changed()
    assert ingestion_queue.wait_until_idle(timeout=5)
    ingestion_queue.stop_session(timeout=5)

    (tmp_path / "while_stopped.m4a").write_bytes(b"x")
    assert ingestion_queue.start_session(tmp_path, timeout=5) == 2

    (tmp_path / "second.m4a").write_bytes(b"x")
    ingestion_queue.notify_changed()
    assert ingestion_queue.wait_until_idle(timeout=5)

    assert processor.names() == ["first.m4a", "second.m4a"]


def test_worker_exception_does_not_stall_the_queue(tmp_path):
    seen = []

    def flaky(path):
        seen.append(path.rsplit("/", 1)[-1])
        if path.endswith("a.m4a"):
            raise RuntimeError("boom")

    q = IngestionQueue(process_file=flaky, list_files=partial(list_audio_files, audio_filter=AudioFileFilter()))
    try:
        q.start_session(tmp_path, timeout=5)
        (tmp_path / "a.m4a").write_bytes(b"x")
        (tmp_path / "b.m4a").write_bytes(b"x")
        q.notify_changed()
        assert q.wait_until_idle(timeout=5)
    finally:
        q.close()

    assert seen == ["a.m4a", "b.m4a"]


def test_notifications_before_start_are_ignored(tmp_path, processor, ingestion_queue):
    (tmp_path / "a.m4a").write_bytes(b"x")
    ingestion_queue.notify_changed()
    assert ingestion_queue.wait_until_idle(timeout=5)

    assert processor.names() == []


def test_missing_folder_on_rescan_is_reported(tmp_path, processor):
    folder = tmp_path / "memos"
    folder.mkdir()
    lost = []
    q = IngestionQueue(
        process_file=processor,
        list_files=partial(list_audio_files, audio_filter=AudioFileFilter()),
        on_folder_lost=lost.append,
    )
    try:
        q.start_session(folder, timeout=5)
        folder.rmdir()

        q.notify_changed()

        assert q.wait_until_idle(5)
        assert lost == [folder]
        assert processor.started == []
        assert q.status(timeout=5).pending == []
    finally:
        q.close()
