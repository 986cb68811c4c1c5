import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Protocol

from desktop_dictate.domain.errors import (
    MalformedMessageError,
    RecognitionServerError,
    RecognizerConnectionError,
)
from desktop_dictate.domain.protocol import (
    END_OF_AUDIO_MARKER,
    RecognitionResponse,
    SessionConfig,
    parse_response,
)
from desktop_dictate.domain.state import StopSignal
from desktop_dictate.ports.audio import FrameSource
from desktop_dictate.ports.recognizer import RecognizerConnection, RecognizerConnector

logger = logging.getLogger(__name__)

FINALIZE_TIMEOUT_SECONDS = 5.0
STOP_POLL_INTERVAL_SECONDS = 0.05
FRAME_LOG_INTERVAL = 100


class SessionStatus(Enum):
    FINISHED = auto()
    TIMED_OUT = auto()
    REMOTE_CLOSED = auto()
    SERVER_ERROR = auto()


@dataclass(frozen=True)
class SessionOutcome:
    status: SessionStatus
    error: RecognitionServerError | None = None


class SessionListener(Protocol):
    def on_connected(self) -> None: ...
    def on_draining(self) -> None: ...
    def on_end_marker_sent(self) -> None: ...
    async def on_response(self, response: RecognitionResponse) -> None: ...


class StreamingSession:
    """One recognition session over a single recognizer connection.

    Outbound traffic (handshake, audio, end marker) goes through a queue
    drained by a writer task, so a slow socket never stalls frame forwarding.
    Inbound messages are parsed in arrival order and handed to the listener.
    Once the end marker is on the wire the session waits at most
    ``finalize_timeout_seconds`` for ``finished: true``.
    """

    def __init__(
        self,
        connector: RecognizerConnector,
        config: SessionConfig,
        finalize_timeout_seconds: float = FINALIZE_TIMEOUT_SECONDS,
        stop_poll_interval_seconds: float = STOP_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._connector = connector
        self._config = config
        self._finalize_timeout_seconds = finalize_timeout_seconds
        self._stop_poll_interval_seconds = stop_poll_interval_seconds
        self._outbound: asyncio.Queue[str | bytes] = asyncio.Queue()
        self._end_marker_queued = False
        self._end_marker_sent = asyncio.Event()
        self._started = False
        self._frames_forwarded = 0
        self._messages_received = 0

    @property
    def frames_forwarded(self) -> int:
        return self._frames_forwarded

    @property
    def end_marker_sent(self) -> bool:
        return self._end_marker_sent.is_set()

    async def run(
        self,
        frames: FrameSource,
        stop_signal: StopSignal,
        listener: SessionListener,
    ) -> SessionOutcome:
        if self._started:
            raise RuntimeError("A StreamingSession can only run once")
        self._started = True

        connection = await self._connector.connect()
        logger.info("Connected to recognizer (model=%s)", self._config.model)
        listener.on_connected()

        self._outbound.put_nowait(self._config.handshake_json())

        writer_task = asyncio.create_task(self._write_loop(connection, listener))
        forward_task = asyncio.create_task(self._forward_audio(frames, stop_signal, listener))
        reader_task = asyncio.create_task(self._read_loop(connection, listener))
        finalize_task = asyncio.create_task(self._finalize_timer())
        tasks = [writer_task, forward_task, reader_task, finalize_task]

        try:
            pending = set(tasks)
            while True:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                if reader_task in done:
                    return reader_task.result()
                if finalize_task in done:
                    logger.warning(
                        "No final response %.1fs after end marker, closing session",
                        self._finalize_timeout_seconds,
                    )
                    return SessionOutcome(SessionStatus.TIMED_OUT)
                if writer_task in done:
                    writer_task.result()
                    raise RecognizerConnectionError("Outbound writer stopped unexpectedly")
                if forward_task in done:
                    forward_task.result()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await connection.close()
            logger.info(
                "Session closed (frames=%d, messages=%d)",
                self._frames_forwarded,
                self._messages_received,
            )

    async def _write_loop(
        self,
        connection: RecognizerConnection,
        listener: SessionListener,
    ) -> None:
        while True:
            message = await self._outbound.get()
            if isinstance(message, bytes):
                await connection.send_audio(message)
                continue
            await connection.send_text(message)
            if message == END_OF_AUDIO_MARKER:
                logger.info("End marker sent")
                self._end_marker_sent.set()
                listener.on_end_marker_sent()

    async def _forward_audio(
        self,
        frames: FrameSource,
        stop_signal: StopSignal,
        listener: SessionListener,
    ) -> None:
        while not stop_signal.is_set():
            try:
                frame = await asyncio.wait_for(
                    frames.get(), timeout=self._stop_poll_interval_seconds
                )
            except asyncio.TimeoutError:
                continue
            if frame is None:
                logger.info("Audio source closed after %d frames", self._frames_forwarded)
                listener.on_draining()
                self._queue_end_marker()
                return
            self._forward_frame(frame)

        logger.info("Stop requested, draining queued audio")
        listener.on_draining()
        while not frames.empty():
            frame = await frames.get()
            if frame is None:
                break
            self._forward_frame(frame)
        self._queue_end_marker()

    def _forward_frame(self, frame: bytes) -> None:
        self._outbound.put_nowait(frame)
        self._frames_forwarded += 1
        if self._frames_forwarded % FRAME_LOG_INTERVAL == 0:
            logger.debug(
                "Forwarded %d audio frames (latest %d bytes)",
                self._frames_forwarded,
                len(frame),
            )

    def _queue_end_marker(self) -> None:
        if self._end_marker_queued:
            return
        self._end_marker_queued = True
        self._outbound.put_nowait(END_OF_AUDIO_MARKER)

    async def _finalize_timer(self) -> None:
        await self._end_marker_sent.wait()
        await asyncio.sleep(self._finalize_timeout_seconds)

    async def _read_loop(
        self,
        connection: RecognizerConnection,
        listener: SessionListener,
    ) -> SessionOutcome:
        async for raw in connection.messages():
            if isinstance(raw, bytes):
                logger.debug("Ignoring binary message (%d bytes)", len(raw))
                continue
            self._messages_received += 1
            logger.debug("Received message: %s", raw[:300])

            try:
                response = parse_response(raw)
            except MalformedMessageError as exc:
                logger.warning("Dropping malformed message: %s", exc)
                continue

            if response.is_error:
                error = RecognitionServerError(response.error_code, response.error_message)
                logger.error("Recognizer error: %s", error)
                return SessionOutcome(SessionStatus.SERVER_ERROR, error)

            await listener.on_response(response)

            if response.finished:
                logger.info("Recognizer finished the session")
                return SessionOutcome(SessionStatus.FINISHED)

        logger.info("Recognizer closed the stream")
        return SessionOutcome(SessionStatus.REMOTE_CLOSED)
