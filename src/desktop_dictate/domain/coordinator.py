import logging
from collections.abc import Callable
from dataclasses import dataclass

from desktop_dictate.domain.errors import (
    AudioDeviceError,
    DictateError,
    RecognizerConnectionError,
)
from desktop_dictate.domain.events import (
    PartialText,
    SessionComplete,
    TranscribedText,
    TranscriptionError,
)
from desktop_dictate.domain.insertion_worker import InsertionWorker
from desktop_dictate.domain.protocol import DEFAULT_MODEL, RecognitionResponse, SessionConfig
from desktop_dictate.domain.state import (
    TERMINAL_PHASES,
    SessionPhase,
    StopSignal,
    validate_transition,
)
from desktop_dictate.domain.streaming_session import (
    SessionOutcome,
    SessionStatus,
    StreamingSession,
)
from desktop_dictate.domain.transcript import TranscriptDiffer
from desktop_dictate.ports.audio import AudioSourcePort
from desktop_dictate.ports.events import EventSink

logger = logging.getLogger(__name__)

SessionFactory = Callable[[SessionConfig], StreamingSession]


@dataclass(frozen=True)
class RecordingResult:
    text: str
    error: DictateError | None = None
    outcome: SessionOutcome | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SessionCoordinator:
    def __init__(
        self,
        audio_source: AudioSourcePort,
        session_factory: SessionFactory,
        insertion_worker: InsertionWorker,
        events: EventSink,
        model: str = DEFAULT_MODEL,
        sample_rate: int = 16000,
        channels: int = 1,
    ) -> None:
        self._audio_source = audio_source
        self._session_factory = session_factory
        self._insertion_worker = insertion_worker
        self._events = events
        self._model = model
        self._sample_rate = sample_rate
        self._channels = channels
        self._phase = SessionPhase.FINISHED
        self._differ = TranscriptDiffer()

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def transcript(self) -> str:
        return self._differ.accumulated_text

    def _transition_to(self, target: SessionPhase) -> None:
        validate_transition(self._phase, target)
        logger.info("Phase: %s -> %s", self._phase.name, target.name)
        self._phase = target

    async def record(
        self,
        credential: str,
        language_hints: list[str],
        language_restrictions: list[str] | None,
        stop_signal: StopSignal,
    ) -> RecordingResult:
        if self._phase not in TERMINAL_PHASES:
            raise RuntimeError(f"A session is already active (phase={self._phase.name})")
        self._phase = SessionPhase.CONNECTING
        self._differ = TranscriptDiffer()
        logger.info("Phase: CONNECTING")

        try:
            await self._audio_source.start(stop_signal)
        except AudioDeviceError as exc:
            logger.error("Audio capture failed: %s", exc)
            stop_signal.set()
            self._transition_to(SessionPhase.FAILED)
            return RecordingResult(text="", error=exc)

        session = self._session_factory(
            SessionConfig(
                api_key=credential,
                model=self._model,
                language_hints=list(language_hints),
                language_restrictions=(
                    list(language_restrictions) if language_restrictions is not None else None
                ),
                sample_rate=self._sample_rate,
                num_channels=self._channels,
            )
        )
        self._insertion_worker.start()

        outcome: SessionOutcome | None = None
        error: DictateError | None = None
        try:
            outcome = await session.run(self._audio_source.frames, stop_signal, self)
            if outcome.error is not None:
                self._events.emit(TranscriptionError(message=str(outcome.error)))
        except RecognizerConnectionError as exc:
            logger.error("Recognizer connection failed: %s", exc)
            error = exc
        finally:
            stop_signal.set()
            capture_error = await self._join_capture()
            await self._insertion_worker.drain()

        if error is None:
            error = capture_error

        failed = error is not None or (
            outcome is not None and outcome.status == SessionStatus.SERVER_ERROR
        )
        self._transition_to(SessionPhase.FAILED if failed else SessionPhase.FINISHED)

        text = self._differ.accumulated_text
        if text:
            logger.info("Session complete: %d chars", len(text))
            self._events.emit(SessionComplete(full_text=text))
        return RecordingResult(text=text, error=error, outcome=outcome)

    async def close(self) -> None:
        await self._insertion_worker.close()

    async def _join_capture(self) -> AudioDeviceError | None:
        try:
            await self._audio_source.join()
        except AudioDeviceError as exc:
            logger.error("Audio capture thread failed: %s", exc)
            return exc
        return None

    def on_connected(self) -> None:
        self._transition_to(SessionPhase.STREAMING)

    def on_draining(self) -> None:
        self._transition_to(SessionPhase.DRAINING)

    def on_end_marker_sent(self) -> None:
        self._transition_to(SessionPhase.FINALIZING)

    async def on_response(self, response: RecognitionResponse) -> None:
        update = self._differ.apply(response.tokens)
        if update.delta:
            logger.info("Transcript: %s", update.delta)
            self._insertion_worker.enqueue(update.delta)
            self._events.emit(TranscribedText(text=update.delta))
        if update.preview:
            logger.debug("Preview: %s", update.preview)
            self._events.emit(PartialText(text=update.preview))
