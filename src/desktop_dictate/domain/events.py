from dataclasses import dataclass, field
from time import time
from typing import ClassVar


@dataclass(frozen=True)
class DictationEvent:
    name: ClassVar[str] = ""
    timestamp: float = field(default_factory=time)

    @property
    def payload(self) -> str | None:
        return None


@dataclass(frozen=True)
class RecordingStarted(DictationEvent):
    name: ClassVar[str] = "recording-started"


@dataclass(frozen=True)
class RecordingStopped(DictationEvent):
    name: ClassVar[str] = "recording-stopped"


@dataclass(frozen=True)
class RecordingError(DictationEvent):
    name: ClassVar[str] = "recording-error"
    message: str = ""

    @property
    def payload(self) -> str:
        return self.message


@dataclass(frozen=True)
class TranscriptionError(DictationEvent):
    name: ClassVar[str] = "transcription-error"
    message: str = ""

    @property
    def payload(self) -> str:
        return self.message


@dataclass(frozen=True)
class TranscribedText(DictationEvent):
    name: ClassVar[str] = "transcribed-text"
    text: str = ""

    @property
    def payload(self) -> str:
        return self.text


@dataclass(frozen=True)
class PartialText(DictationEvent):
    name: ClassVar[str] = "partial-text"
    text: str = ""

    @property
    def payload(self) -> str:
        return self.text


@dataclass(frozen=True)
class SessionComplete(DictationEvent):
    name: ClassVar[str] = "session-complete"
    full_text: str = ""

    @property
    def payload(self) -> str:
        return self.full_text
