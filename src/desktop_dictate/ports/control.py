from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol


@dataclass(frozen=True)
class ControlCommand:
    action: str
    payload: dict | None = None


CommandHandler = Callable[[ControlCommand], Awaitable[dict]]


class ControlPort(Protocol):
    async def start(self, handler: CommandHandler) -> None: ...
    async def stop(self) -> None: ...
