from typing import Protocol, AsyncIterator


class RecognizerConnection(Protocol):
    async def send_text(self, message: str) -> None: ...
    async def send_audio(self, frame: bytes) -> None: ...
    def messages(self) -> AsyncIterator[str | bytes]: ...
    async def close(self) -> None: ...


class RecognizerConnector(Protocol):
    async def connect(self) -> RecognizerConnection: ...
