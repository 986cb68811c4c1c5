import asyncio
import json
from collections.abc import AsyncIterator

import numpy as np
import pytest

from desktop_dictate.domain.coordinator import SessionCoordinator
from desktop_dictate.domain.errors import InsertionError
from desktop_dictate.domain.events import DictationEvent
from desktop_dictate.domain.insertion_worker import InsertionWorker
from desktop_dictate.domain.protocol import END_OF_AUDIO_MARKER, SessionConfig
from desktop_dictate.domain.state import StopSignal
from desktop_dictate.domain.streaming_session import StreamingSession
from desktop_dictate.ports.history import TranscriptionEntry


SAMPLE_RATE = 16000
FRAME_DURATION_MS = 100
FRAME_SIZE = int(SAMPLE_RATE * FRAME_DURATION_MS / 1000)


def generate_silence(duration_ms: int = FRAME_DURATION_MS, sample_rate: int = SAMPLE_RATE) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    return np.zeros(num_samples, dtype=np.int16).tobytes()


def generate_sine_wave(
    frequency: float = 440.0,
    duration_ms: int = FRAME_DURATION_MS,
    amplitude: float = 0.8,
    sample_rate: int = SAMPLE_RATE,
) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(num_samples) / sample_rate
    signal = np.sin(2 * np.pi * frequency * t) * amplitude
    return (signal * 32767).astype(np.int16).tobytes()


def token(text: str, is_final: bool = True) -> dict:
    return {"text": text, "is_final": is_final}


def response_json(*tokens: dict, finished: bool = False) -> str:
    message: dict = {"tokens": list(tokens)}
    if finished:
        message["finished"] = True
    return json.dumps(message)


def error_json(code: int = 401, message: str = "Invalid API key") -> str:
    return json.dumps({"error_code": code, "error_message": message})


class FakeRecognizerConnection:
    """Records outbound traffic in order and replays scripted inbound messages.

    ``after_end_marker`` messages are released once the end marker is sent,
    mimicking a server that finalizes only after the client finishes audio.
    """

    def __init__(
        self,
        messages: list[str | bytes] | None = None,
        after_end_marker: list[str | bytes] | None = None,
        close_after_end_marker: bool = False,
    ) -> None:
        self.sent: list[str | bytes] = []
        self.closed = False
        self._inbound: asyncio.Queue[str | bytes | None] = asyncio.Queue()
        self._after_end_marker = list(after_end_marker or [])
        self._close_after_end_marker = close_after_end_marker
        for message in messages or []:
            self._inbound.put_nowait(message)

    @property
    def sent_text(self) -> list[str]:
        return [m for m in self.sent if isinstance(m, str)]

    @property
    def sent_audio(self) -> list[bytes]:
        return [m for m in self.sent if isinstance(m, bytes)]

    @property
    def end_marker_count(self) -> int:
        return self.sent.count(END_OF_AUDIO_MARKER)

    def push(self, message: str | bytes) -> None:
        self._inbound.put_nowait(message)

    def close_stream(self) -> None:
        self._inbound.put_nowait(None)

    async def send_text(self, message: str) -> None:
        self.sent.append(message)
        if message == END_OF_AUDIO_MARKER:
            for scripted in self._after_end_marker:
                self._inbound.put_nowait(scripted)
            if self._close_after_end_marker:
                self.close_stream()

    async def send_audio(self, frame: bytes) -> None:
        self.sent.append(frame)

    async def messages(self) -> AsyncIterator[str | bytes]:
        while True:
            message = await self._inbound.get()
            if message is None:
                return
            yield message

    async def close(self) -> None:
        self.closed = True


class FakeRecognizerConnector:
    def __init__(
        self,
        connection: FakeRecognizerConnection | None = None,
        error: Exception | None = None,
    ) -> None:
        self.connection = connection or FakeRecognizerConnection()
        self.error = error
        self.connect_count = 0

    async def connect(self) -> FakeRecognizerConnection:
        self.connect_count += 1
        if self.error is not None:
            raise self.error
        return self.connection


class FakeAudioSource:
    def __init__(
        self,
        frames: list[bytes] | None = None,
        close_after_frames: bool = False,
        start_error: Exception | None = None,
        join_error: Exception | None = None,
    ) -> None:
        self._frames_to_emit = list(frames or [])
        self._close_after_frames = close_after_frames
        self._start_error = start_error
        self._join_error = join_error
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self.started = False
        self.joined = False
        self.stop_signal: StopSignal | None = None

    @property
    def frames(self) -> asyncio.Queue[bytes | None]:
        return self._queue

    async def start(self, stop_signal: StopSignal) -> None:
        self.stop_signal = stop_signal
        if self._start_error is not None:
            raise self._start_error
        self.started = True
        self._queue = asyncio.Queue()
        for frame in self._frames_to_emit:
            self._queue.put_nowait(frame)
        if self._close_after_frames:
            self._queue.put_nowait(None)

    async def join(self) -> None:
        self.joined = True
        if self._join_error is not None:
            raise self._join_error


class FakeInserter:
    def __init__(
        self,
        fail_on: set[str] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.inserted: list[str] = []
        self.attempts: list[str] = []
        self._fail_on = fail_on or set()
        self._error = error

    def insert(self, text: str) -> None:
        self.attempts.append(text)
        if text in self._fail_on:
            raise self._error or InsertionError(f"cannot insert {text!r}")
        self.inserted.append(text)


class RecordingEventSink:
    def __init__(self) -> None:
        self.events: list[DictationEvent] = []

    @property
    def names(self) -> list[str]:
        return [event.name for event in self.events]

    def payloads(self, name: str) -> list[str | None]:
        return [event.payload for event in self.events if event.name == name]

    def emit(self, event: DictationEvent) -> None:
        self.events.append(event)


class RecordingListener:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.responses = []

    def on_connected(self) -> None:
        self.calls.append("connected")

    def on_draining(self) -> None:
        self.calls.append("draining")

    def on_end_marker_sent(self) -> None:
        self.calls.append("end_marker_sent")

    async def on_response(self, response) -> None:
        self.calls.append("response")
        self.responses.append(response)


class MemoryHistory:
    def __init__(self) -> None:
        self._entries: list[TranscriptionEntry] = []

    def entries(self) -> list[TranscriptionEntry]:
        return list(self._entries)

    def add(self, text: str, language_hints: list[str]) -> TranscriptionEntry:
        entry = TranscriptionEntry(text=text, timestamp=0, language=",".join(language_hints))
        self._entries.insert(0, entry)
        return entry

    def clear(self) -> None:
        self._entries.clear()


def build_coordinator(
    audio_source: FakeAudioSource,
    connector: FakeRecognizerConnector,
    inserter: FakeInserter,
    events: RecordingEventSink,
    finalize_timeout_seconds: float = 1.0,
) -> SessionCoordinator:
    def session_factory(config: SessionConfig) -> StreamingSession:
        return StreamingSession(
            connector=connector,
            config=config,
            finalize_timeout_seconds=finalize_timeout_seconds,
            stop_poll_interval_seconds=0.01,
        )

    return SessionCoordinator(
        audio_source=audio_source,
        session_factory=session_factory,
        insertion_worker=InsertionWorker(inserter),
        events=events,
    )


@pytest.fixture
def speech_frames():
    return [generate_sine_wave() for _ in range(3)]


@pytest.fixture
def fake_inserter():
    return FakeInserter()


@pytest.fixture
def event_sink():
    return RecordingEventSink()


@pytest.fixture
def stop_signal():
    return StopSignal()


@pytest.fixture
def session_config():
    return SessionConfig(api_key="test-key", language_hints=["en"])
