import threading
import time

import pytest

from whenparse.concurrency import ReadWriteLock, TaskCounter


@pytest.mark.unit
class TestTaskCounter:
    def test_add_and_done(self):
        counter = TaskCounter(1)
        assert counter.add(2) == 3
        assert counter.done() == 2
        assert counter.value == 2

    def test_cannot_go_below_zero(self):
        counter = TaskCounter(1)
        counter.done()
        with pytest.raises(AssertionError):
            counter.done()

    def test_threads(self):
        counter = TaskCounter(0)

        def work():
            for _ in range(1000):
                counter.add()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert counter.value == 8000


@pytest.mark.unit
class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        with lock.read_locked():
            with lock.read_locked():
                pass

    def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        events = []
        reading = threading.Event()

        def writer():
            reading.wait()
            with lock.write_locked():
                events.append("write")

        thread = threading.Thread(target=writer)
        thread.start()
        with lock.read_locked():
            reading.set()
            time.sleep(0.05)
            events.append("read done")
        thread.join(timeout=5)
        assert events == ["read done", "write"]
