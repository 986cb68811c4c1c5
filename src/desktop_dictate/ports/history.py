from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class TranscriptionEntry:
    text: str
    timestamp: int
    language: str


class HistoryPort(Protocol):
    def entries(self) -> list[TranscriptionEntry]: ...
    def add(self, text: str, language_hints: list[str]) -> TranscriptionEntry: ...
    def clear(self) -> None: ...
