import asyncio

import pytest

from desktop_dictate.domain.insertion_worker import InsertionWorker
from tests.conftest import FakeInserter


class FaultyLibraryInserter:
    def __init__(self) -> None:
        self.inserted: list[str] = []

    def insert(self, text: str) -> None:
        if text == "bad":
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        self.inserted.append(text)


class TestInsertionWorker:
    @pytest.mark.asyncio
    async def test_inserts_in_enqueue_order(self, fake_inserter):
        worker = InsertionWorker(fake_inserter)
        worker.start()
        for text in ["Hello", " world", "!"]:
            worker.enqueue(text)
        await worker.drain()
        assert fake_inserter.inserted == ["Hello", " world", "!"]
        assert worker.inserted_count == 3
        await worker.close()

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_later_insertions(self):
        inserter = FakeInserter(fail_on={"bad"})
        worker = InsertionWorker(inserter)
        worker.start()
        for text in ["one", "bad", "two"]:
            worker.enqueue(text)
        await worker.drain()
        assert inserter.attempts == ["one", "bad", "two"]
        assert inserter.inserted == ["one", "two"]
        assert worker.failed_count == 1
        await worker.close()

    @pytest.mark.asyncio
    async def test_empty_text_is_not_enqueued(self, fake_inserter):
        worker = InsertionWorker(fake_inserter)
        worker.start()
        worker.enqueue("")
        await worker.drain()
        assert fake_inserter.attempts == []
        await worker.close()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, fake_inserter):
        worker = InsertionWorker(fake_inserter)
        worker.start()
        worker.start()
        worker.enqueue("once")
        await worker.drain()
        assert fake_inserter.inserted == ["once"]
        await worker.close()

    @pytest.mark.asyncio
    async def test_drain_before_start_returns(self, fake_inserter):
        worker = InsertionWorker(fake_inserter)
        await asyncio.wait_for(worker.drain(), timeout=1.0)
        assert not worker.running

    @pytest.mark.asyncio
    async def test_unexpected_fault_is_counted_and_skipped(self):
        inserter = FaultyLibraryInserter()
        worker = InsertionWorker(inserter)
        worker.start()
        for text in ["bad", "good"]:
            worker.enqueue(text)
        await asyncio.wait_for(worker.drain(), timeout=2.0)
        assert inserter.inserted == ["good"]
        assert worker.failed_count == 1
        assert worker.running
        await worker.close()

    @pytest.mark.asyncio
    async def test_close_stops_worker(self, fake_inserter):
        worker = InsertionWorker(fake_inserter)
        worker.start()
        assert worker.running
        await worker.close()
        assert not worker.running
