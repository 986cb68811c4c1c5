from typing import Protocol


class TextInserter(Protocol):
    """Inserts text into the focused target. Failures raise ``InsertionError``."""

    def insert(self, text: str) -> None: ...
