from typing import Protocol

from desktop_dictate.domain.events import DictationEvent


class EventSink(Protocol):
    def emit(self, event: DictationEvent) -> None: ...
