from typing import Protocol

from desktop_dictate.domain.state import StopSignal


class FrameSource(Protocol):
    """Async side of the capture queue. ``None`` means the producer closed."""

    async def get(self) -> bytes | None: ...
    def empty(self) -> bool: ...


class AudioSourcePort(Protocol):
    @property
    def frames(self) -> FrameSource: ...
    async def start(self, stop_signal: StopSignal) -> None: ...
    async def join(self) -> None: ...
