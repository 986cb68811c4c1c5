import asyncio
import logging

from desktop_dictate.domain.coordinator import RecordingResult, SessionCoordinator
from desktop_dictate.domain.events import RecordingError, RecordingStarted, RecordingStopped
from desktop_dictate.domain.state import StopSignal
from desktop_dictate.ports.events import EventSink
from desktop_dictate.ports.history import HistoryPort

logger = logging.getLogger(__name__)

MISSING_API_KEY_MESSAGE = (
    "API key not configured. Set DESKTOP_DICTATE_API_KEY or DESKTOP_DICTATE_API_KEY_FILE."
)


class DictationController:
    def __init__(
        self,
        coordinator: SessionCoordinator,
        events: EventSink,
        history: HistoryPort,
        api_key: str,
        language_hints: list[str],
        language_restrictions: list[str] | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._events = events
        self._history = history
        self._api_key = api_key
        self._language_hints = list(language_hints)
        self._language_restrictions = language_restrictions
        self._stop_signal: StopSignal | None = None
        self._task: asyncio.Task[RecordingResult] | None = None
        self._recording = False
        self._stopped_emitted = True
        self._last_result: RecordingResult | None = None

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_result(self) -> RecordingResult | None:
        return self._last_result

    @property
    def history(self) -> HistoryPort:
        return self._history

    def toggle(self) -> bool:
        if self._recording:
            self.stop()
            return False
        return self.start()

    def start(self) -> bool:
        if self._recording:
            logger.warning("Already recording")
            return False
        if self.busy:
            logger.warning("Previous session is still finalizing")
            return False
        if not self._api_key:
            logger.error("API key is empty")
            self._events.emit(RecordingError(message=MISSING_API_KEY_MESSAGE))
            return False

        logger.info("Starting recording")
        self._stop_signal = StopSignal()
        self._recording = True
        self._stopped_emitted = False
        self._events.emit(RecordingStarted())
        self._task = asyncio.create_task(self._record(self._stop_signal))
        return True

    def stop(self) -> bool:
        if not self._recording:
            return False
        logger.info("Stopping recording")
        self._stop_signal.set()
        self._recording = False
        self._emit_stopped()
        return True

    def status(self) -> dict:
        return {
            "recording": self._recording,
            "busy": self.busy,
            "phase": self._coordinator.phase.name,
            "history": len(self._history.entries()),
        }

    async def wait(self) -> RecordingResult | None:
        if self._task is None:
            return self._last_result
        return await self._task

    async def shutdown(self) -> None:
        self.stop()
        if self._task is not None:
            await self._task
        await self._coordinator.close()

    async def _record(self, stop_signal: StopSignal) -> RecordingResult:
        try:
            result = await self._coordinator.record(
                self._api_key,
                self._language_hints,
                self._language_restrictions,
                stop_signal,
            )
        finally:
            self._recording = False

        if result.error is not None:
            self._events.emit(RecordingError(message=str(result.error)))
        if result.text:
            self._save_history(result.text)
        self._emit_stopped()
        self._last_result = result
        return result

    def _save_history(self, text: str) -> None:
        try:
            self._history.add(text, self._language_hints)
        except OSError as exc:
            logger.error("Failed to save transcription history: %s", exc)

    def _emit_stopped(self) -> None:
        if self._stopped_emitted:
            return
        self._stopped_emitted = True
        self._events.emit(RecordingStopped())
