import asyncio
import logging

from desktop_dictate.domain.errors import InsertionError
from desktop_dictate.ports.insertion import TextInserter

logger = logging.getLogger(__name__)


class InsertionWorker:
    def __init__(self, inserter: TextInserter) -> None:
        self._inserter = inserter
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._inserted_count = 0
        self._failed_count = 0

    @property
    def inserted_count(self) -> int:
        return self._inserted_count

    @property
    def failed_count(self) -> int:
        return self._failed_count

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    def enqueue(self, text: str) -> None:
        if not text:
            return
        self._queue.put_nowait(text)

    async def drain(self) -> None:
        if self._task is None:
            return
        joined = asyncio.create_task(self._queue.join())
        await asyncio.wait({joined, self._task}, return_when=asyncio.FIRST_COMPLETED)
        if self._task.done():
            joined.cancel()
            self._task.result()

    async def close(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                await asyncio.to_thread(self._inserter.insert, text)
                self._inserted_count += 1
            except InsertionError as exc:
                self._failed_count += 1
                logger.error("Failed to insert text (%d chars): %s", len(text), exc)
            except Exception:
                self._failed_count += 1
                logger.exception("Unexpected fault inserting text (%d chars)", len(text))
            finally:
                self._queue.task_done()
