import logging
from collections.abc import AsyncIterator

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from desktop_dictate.domain.errors import RecognizerConnectionError

logger = logging.getLogger(__name__)

SONIOX_WEBSOCKET_URL = "wss://stt-rt.soniox.com/transcribe-websocket"


class WebsocketRecognizerConnection:
    def __init__(self, websocket: ClientConnection) -> None:
        self._websocket = websocket

    async def send_text(self, message: str) -> None:
        await self._send(message)

    async def send_audio(self, frame: bytes) -> None:
        await self._send(frame)

    async def messages(self) -> AsyncIterator[str | bytes]:
        try:
            async for message in self._websocket:
                yield message
        except ConnectionClosed as exc:
            raise RecognizerConnectionError(f"WebSocket receive failed: {exc}") from exc

    async def close(self) -> None:
        await self._websocket.close()

    async def _send(self, message: str | bytes) -> None:
        try:
            await self._websocket.send(message)
        except ConnectionClosedOK:
            logger.debug("Connection already closed, dropping outbound message")
        except ConnectionClosed as exc:
            raise RecognizerConnectionError(f"WebSocket send failed: {exc}") from exc


class SonioxConnector:
    def __init__(
        self,
        url: str = SONIOX_WEBSOCKET_URL,
        open_timeout_seconds: float = 10.0,
    ) -> None:
        self._url = url
        self._open_timeout_seconds = open_timeout_seconds

    async def connect(self) -> WebsocketRecognizerConnection:
        logger.info("Connecting to recognizer: %s", self._url)
        try:
            websocket = await connect(self._url, open_timeout=self._open_timeout_seconds)
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise RecognizerConnectionError(f"WebSocket connection failed: {exc}") from exc
        return WebsocketRecognizerConnection(websocket)
