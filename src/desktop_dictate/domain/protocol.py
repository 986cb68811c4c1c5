import json
from dataclasses import dataclass, field

from desktop_dictate.domain.errors import MalformedMessageError

DEFAULT_MODEL = "stt-rt-v4"
AUDIO_FORMAT = "pcm_s16le"
END_OF_AUDIO_MARKER = ""


@dataclass(frozen=True)
class RecognitionToken:
    text: str
    is_final: bool
    speaker: str | None = None
    language: str | None = None


@dataclass(frozen=True)
class RecognitionResponse:
    error_code: str | None = None
    error_message: str | None = None
    tokens: tuple[RecognitionToken, ...] = ()
    finished: bool = False

    @property
    def is_error(self) -> bool:
        return self.error_code is not None or self.error_message is not None


@dataclass(frozen=True)
class SessionConfig:
    api_key: str
    model: str = DEFAULT_MODEL
    language_hints: list[str] = field(default_factory=list)
    language_restrictions: list[str] | None = None
    sample_rate: int = 16000
    num_channels: int = 1

    def to_handshake(self) -> dict:
        message = {
            "api_key": self.api_key,
            "model": self.model,
            "language_hints": list(self.language_hints) or None,
            "language_restrictions": (
                list(self.language_restrictions)
                if self.language_restrictions is not None
                else None
            ),
            "enable_endpoint_detection": True,
            "audio_format": AUDIO_FORMAT,
            "sample_rate": self.sample_rate,
            "num_channels": self.num_channels,
        }
        return {key: value for key, value in message.items() if value is not None}

    def handshake_json(self) -> str:
        return json.dumps(self.to_handshake())


def parse_response(raw: str | bytes) -> RecognitionResponse:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedMessageError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessageError(f"Expected a JSON object, got {type(data).__name__}")

    raw_tokens = data.get("tokens") or []
    if not isinstance(raw_tokens, list):
        raise MalformedMessageError("'tokens' is not a list")

    tokens = tuple(_parse_token(item) for item in raw_tokens)
    error_code = data.get("error_code")
    return RecognitionResponse(
        error_code=str(error_code) if error_code is not None else None,
        error_message=data.get("error_message"),
        tokens=tokens,
        finished=data.get("finished") is True,
    )


def _parse_token(item: object) -> RecognitionToken:
    if not isinstance(item, dict):
        raise MalformedMessageError("Token is not an object")
    text = item.get("text")
    is_final = item.get("is_final")
    if not isinstance(text, str) or not isinstance(is_final, bool):
        raise MalformedMessageError(f"Token missing text/is_final: {item!r}")
    speaker = item.get("speaker")
    return RecognitionToken(
        text=text,
        is_final=is_final,
        speaker=str(speaker) if speaker is not None else None,
        language=item.get("language"),
    )
