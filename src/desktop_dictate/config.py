from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class DictateConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DESKTOP_DICTATE_")

    api_key: str = ""
    api_key_file: str = ""

    soniox_url: str = "wss://stt-rt.soniox.com/transcribe-websocket"
    model: str = "stt-rt-v4"
    language_hints: list[str] = ["en"]
    language_restrictions: list[str] | None = None

    capture_device: str = ""
    sample_rate: int = 16000
    channels: int = 1
    frame_duration_ms: int = 100
    frame_queue_size: int = 100
    full_queue_policy: Literal["block", "drop-newest"] = "block"

    finalize_timeout_seconds: float = 5.0
    connect_timeout_seconds: float = 10.0

    insertion_strategies: list[str] = []

    socket_path: str = "/tmp/desktop-dictate.sock"
    log_file: str = "/tmp/desktop-dictate.log"
    history_file: str = "~/.local/share/desktop-dictate/transcriptions.json"
    history_limit: int = 100

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def resolve_api_key(self) -> str:
        return self.api_key.strip() or self.read_secret(self.api_key_file)
