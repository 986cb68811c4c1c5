import logging
from collections.abc import Iterable
from dataclasses import dataclass

from desktop_dictate.domain.protocol import RecognitionToken

logger = logging.getLogger(__name__)


def is_control_token(text: str) -> bool:
    trimmed = text.strip()
    return trimmed.startswith("<") and trimmed.endswith(">")


@dataclass(frozen=True)
class TranscriptUpdate:
    delta: str
    preview: str


@dataclass
class TranscriptState:
    finalized_text: str = ""
    accumulated_text: str = ""


class TranscriptDiffer:
    """Turns each response's token list into newly finalized text and a preview.

    When a response's final text extends the previous one only the suffix is
    new. Otherwise the whole final text of the response is the delta, even if
    part of it was already inserted; nothing is reconciled against what was
    typed before.
    """

    def __init__(self) -> None:
        self._state = TranscriptState()

    @property
    def finalized_text(self) -> str:
        return self._state.finalized_text

    @property
    def accumulated_text(self) -> str:
        return self._state.accumulated_text

    def apply(self, tokens: Iterable[RecognitionToken]) -> TranscriptUpdate:
        final_parts: list[str] = []
        tentative_parts: list[str] = []
        for token in tokens:
            if not token.text or is_control_token(token.text):
                continue
            if token.is_final:
                final_parts.append(token.text)
            else:
                tentative_parts.append(token.text)

        current_final_text = "".join(final_parts)
        previous = self._state.finalized_text

        if current_final_text.startswith(previous):
            delta = current_final_text[len(previous):]
        else:
            if current_final_text:
                logger.debug(
                    "Final text does not extend previous: previous=%r current=%r",
                    previous,
                    current_final_text,
                )
            delta = current_final_text

        self._state.finalized_text = current_final_text
        if delta:
            self._state.accumulated_text += delta

        return TranscriptUpdate(
            delta=delta,
            preview=current_final_text + "".join(tentative_parts),
        )
