import logging

from desktop_dictate.domain.events import (
    DictationEvent,
    PartialText,
    RecordingError,
    TranscriptionError,
)

logger = logging.getLogger(__name__)


class LoggingEventSink:
    def __init__(self) -> None:
        self._counts: dict[str, int] = {}

    @property
    def counts(self) -> dict[str, int]:
        return dict(self._counts)

    def emit(self, event: DictationEvent) -> None:
        self._counts[event.name] = self._counts.get(event.name, 0) + 1
        if isinstance(event, (RecordingError, TranscriptionError)):
            logger.error("Event %s: %s", event.name, event.payload)
        elif isinstance(event, PartialText):
            logger.debug("Event %s: %s", event.name, event.payload)
        elif event.payload is None:
            logger.info("Event %s", event.name)
        else:
            logger.info("Event %s: %s", event.name, event.payload)
