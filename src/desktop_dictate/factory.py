import logging

from desktop_dictate.adapters.json_history import JsonHistoryStore
from desktop_dictate.adapters.log_events import LoggingEventSink
from desktop_dictate.adapters.soniox_websocket import SonioxConnector
from desktop_dictate.adapters.sounddevice_audio import SounddeviceAudioSource
from desktop_dictate.adapters.text_insertion import create_text_inserter
from desktop_dictate.config import DictateConfig
from desktop_dictate.domain.controller import DictationController
from desktop_dictate.domain.coordinator import SessionCoordinator, SessionFactory
from desktop_dictate.domain.insertion_worker import InsertionWorker
from desktop_dictate.domain.protocol import SessionConfig
from desktop_dictate.domain.streaming_session import StreamingSession
from desktop_dictate.ports.events import EventSink

logger = logging.getLogger(__name__)


def create_audio_source(config: DictateConfig) -> SounddeviceAudioSource:
    return SounddeviceAudioSource(
        device=config.capture_device or None,
        sample_rate=config.sample_rate,
        channels=config.channels,
        frame_duration_ms=config.frame_duration_ms,
        queue_size=config.frame_queue_size,
        full_queue_policy=config.full_queue_policy,
    )


def create_session_factory(config: DictateConfig) -> SessionFactory:
    connector = SonioxConnector(
        url=config.soniox_url,
        open_timeout_seconds=config.connect_timeout_seconds,
    )

    def build_session(session_config: SessionConfig) -> StreamingSession:
        return StreamingSession(
            connector=connector,
            config=session_config,
            finalize_timeout_seconds=config.finalize_timeout_seconds,
        )

    return build_session


def create_coordinator(config: DictateConfig, events: EventSink) -> SessionCoordinator:
    inserter = create_text_inserter(config.insertion_strategies)
    return SessionCoordinator(
        audio_source=create_audio_source(config),
        session_factory=create_session_factory(config),
        insertion_worker=InsertionWorker(inserter),
        events=events,
        model=config.model,
        sample_rate=config.sample_rate,
        channels=config.channels,
    )


def create_controller(config: DictateConfig) -> DictationController:
    events = LoggingEventSink()
    return DictationController(
        coordinator=create_coordinator(config, events),
        events=events,
        history=JsonHistoryStore(config.history_file, limit=config.history_limit),
        api_key=config.resolve_api_key(),
        language_hints=config.language_hints,
        language_restrictions=config.language_restrictions,
    )
