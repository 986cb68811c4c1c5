import json
import logging
import time
from dataclasses import asdict
from pathlib import Path

from desktop_dictate.ports.history import TranscriptionEntry

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


class JsonHistoryStore:
    """Newest-first list of finished transcriptions kept in one JSON file."""

    def __init__(self, path: str | Path, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._path = Path(path).expanduser()
        self._limit = limit

    @property
    def path(self) -> Path:
        return self._path

    def entries(self) -> list[TranscriptionEntry]:
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable history file %s: %s", self._path, exc)
            return []
        if not isinstance(raw, list):
            logger.warning("Ignoring history file %s: not a list", self._path)
            return []

        entries = []
        for item in raw:
            try:
                entries.append(
                    TranscriptionEntry(
                        text=str(item["text"]),
                        timestamp=int(item["timestamp"]),
                        language=str(item.get("language", "")),
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed history entry: %r", item)
        return entries

    def add(self, text: str, language_hints: list[str]) -> TranscriptionEntry:
        entry = TranscriptionEntry(
            text=text,
            timestamp=int(time.time()),
            language=",".join(language_hints),
        )
        entries = [entry, *self.entries()][: self._limit]
        self._write(entries)
        return entry

    def clear(self) -> None:
        self._write([])

    def _write(self, entries: list[TranscriptionEntry]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps([asdict(entry) for entry in entries], ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        tmp_path.replace(self._path)
