import asyncio
import json
import logging
import os
from pathlib import Path

from desktop_dictate.ports.control import CommandHandler, ControlCommand

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/tmp/desktop-dictate.sock"


def _decode_request(raw: bytes) -> ControlCommand:
    request = json.loads(raw.decode())
    if not isinstance(request, dict) or not isinstance(request.get("action"), str):
        raise ValueError("request must be an object with a string 'action'")
    payload = request.get("payload")
    return ControlCommand(action=request["action"], payload=payload if isinstance(payload, dict) else None)


def _encode_line(message: dict) -> bytes:
    return (json.dumps(message) + "\n").encode()


class UnixSocketControlServer:
    """One JSON request line in, one JSON reply line out, per connection."""

    def __init__(
        self,
        socket_path: str = DEFAULT_SOCKET_PATH,
        read_timeout_seconds: float = 5.0,
    ) -> None:
        self._socket_path = Path(socket_path)
        self._read_timeout_seconds = read_timeout_seconds
        self._server: asyncio.Server | None = None
        self._handler: CommandHandler | None = None

    @property
    def listening(self) -> bool:
        return self._server is not None

    async def start(self, handler: CommandHandler) -> None:
        self._handler = handler
        self._socket_path.unlink(missing_ok=True)
        self._server = await asyncio.start_unix_server(self._serve_client, path=str(self._socket_path))
        os.chmod(self._socket_path, 0o600)
        logger.info("Control socket listening at %s", self._socket_path)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        self._socket_path.unlink(missing_ok=True)

    async def _serve_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=self._read_timeout_seconds)
            if not raw.strip():
                return
            try:
                command = _decode_request(raw)
            except ValueError as exc:
                logger.warning("Rejected control request: %s", exc)
                writer.write(_encode_line({"status": "error", "message": "invalid request"}))
            else:
                logger.debug("Control command: %s", command.action)
                writer.write(_encode_line(await self._handler(command)))
            await writer.drain()
        except asyncio.TimeoutError:
            logger.warning("Control client sent nothing within %.1fs", self._read_timeout_seconds)
        except Exception:
            logger.exception("Error handling control client")
        finally:
            writer.close()
            await writer.wait_closed()


class UnixSocketControlClient:
    def __init__(
        self,
        socket_path: str = DEFAULT_SOCKET_PATH,
        reply_timeout_seconds: float = 10.0,
    ) -> None:
        self._socket_path = socket_path
        self._reply_timeout_seconds = reply_timeout_seconds

    async def send_command(self, action: str, payload: dict | None = None) -> dict:
        request: dict = {"action": action}
        if payload:
            request["payload"] = payload

        reader, writer = await asyncio.open_unix_connection(self._socket_path)
        try:
            writer.write(_encode_line(request))
            await writer.drain()
            reply = await asyncio.wait_for(reader.readline(), timeout=self._reply_timeout_seconds)
        finally:
            writer.close()
            await writer.wait_closed()

        if not reply:
            return {"status": "error", "action": action, "message": "no reply from daemon"}
        return json.loads(reply)
