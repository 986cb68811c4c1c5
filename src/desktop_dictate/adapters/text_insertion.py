import logging
import os
import shutil
import subprocess
import sys
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Protocol

import pyperclip

from desktop_dictate.domain.errors import InsertionError

logger = logging.getLogger(__name__)

TOOL_TIMEOUT_SECONDS = 5.0
CLIPBOARD_SETTLE_SECONDS = 0.03
PASTE_READ_DELAY_SECONDS = 0.15


class InsertionStrategy(Protocol):
    name: str

    def insert(self, text: str) -> None: ...


@contextmanager
def library_faults(mechanism: str) -> Iterator[None]:
    """Converts any fault raised inside a third-party input library into InsertionError."""
    try:
        yield
    except InsertionError:
        raise
    except Exception as exc:
        raise InsertionError(f"{mechanism} failed: {exc!r}") from exc


def _run_tool(args: Sequence[str]) -> str:
    try:
        result = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            timeout=TOOL_TIMEOUT_SECONDS,
        )
    except (OSError, ValueError, subprocess.TimeoutExpired) as exc:
        raise InsertionError(f"{args[0]} exec failed: {exc}") from exc
    if result.returncode != 0:
        raise InsertionError(
            f"{args[0]} exited with status {result.returncode}: {result.stderr.strip()}"
        )
    return result.stdout


def _pipe_to_tool(args: Sequence[str], data: str) -> None:
    # xclip forks to own the selection; its stdout must not be a pipe we wait on.
    try:
        result = subprocess.run(
            list(args),
            input=data,
            text=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=TOOL_TIMEOUT_SECONDS,
        )
    except (OSError, ValueError, subprocess.TimeoutExpired) as exc:
        raise InsertionError(f"{args[0]} exec failed: {exc}") from exc
    if result.returncode != 0:
        raise InsertionError(f"{args[0]} exited with status {result.returncode}")


class YdotoolInserter:
    name = "ydotool"

    def insert(self, text: str) -> None:
        _run_tool(["ydotool", "type", "--", text])


class WtypeInserter:
    name = "wtype"

    def insert(self, text: str) -> None:
        _run_tool(["wtype", "--", text])


class XclipPasteInserter:
    name = "xclip-paste"

    def insert(self, text: str) -> None:
        try:
            previous = _run_tool(["xclip", "-selection", "clipboard", "-o"])
        except InsertionError:
            previous = None

        _pipe_to_tool(["xclip", "-selection", "clipboard"], text)
        time.sleep(CLIPBOARD_SETTLE_SECONDS)
        _run_tool(["xdotool", "key", "--clearmodifiers", "ctrl+v"])
        time.sleep(PASTE_READ_DELAY_SECONDS)

        if previous is not None:
            try:
                _pipe_to_tool(["xclip", "-selection", "clipboard"], previous)
            except InsertionError as exc:
                logger.warning("Failed to restore previous clipboard: %s", exc)


class KeystrokeInserter:
    name = "keystroke"

    def insert(self, text: str) -> None:
        with library_faults("pynput keystroke synthesis"):
            from pynput.keyboard import Controller

            Controller().type(text)


class ClipboardPasteInserter:
    name = "clipboard-paste"

    def __init__(self, platform: str = sys.platform) -> None:
        self._platform = platform

    def insert(self, text: str) -> None:
        try:
            previous = pyperclip.paste()
        except pyperclip.PyperclipException:
            previous = None

        with library_faults("clipboard write"):
            pyperclip.copy(text)
        time.sleep(CLIPBOARD_SETTLE_SECONDS)

        with library_faults("paste shortcut"):
            self._simulate_paste()
        time.sleep(PASTE_READ_DELAY_SECONDS)

        if previous:
            try:
                pyperclip.copy(previous)
            except pyperclip.PyperclipException as exc:
                logger.warning("Failed to restore previous clipboard: %s", exc)

    def _simulate_paste(self) -> None:
        from pynput.keyboard import Controller, Key

        keyboard = Controller()
        modifier = Key.cmd if self._platform == "darwin" else Key.ctrl
        with keyboard.pressed(modifier):
            keyboard.tap("v")


class ChainedTextInserter:
    """Tries each strategy in order until one inserts the text."""

    def __init__(self, strategies: Sequence[InsertionStrategy]) -> None:
        self._strategies = list(strategies)
        self._last_strategy: str | None = None

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self._strategies]

    @property
    def last_strategy(self) -> str | None:
        return self._last_strategy

    def insert(self, text: str) -> None:
        if not text:
            return
        if not self._strategies:
            raise InsertionError("No text insertion mechanism available")

        failures = []
        for strategy in self._strategies:
            try:
                with library_faults(strategy.name):
                    strategy.insert(text)
            except InsertionError as exc:
                logger.warning("%s failed: %s", strategy.name, exc)
                failures.append(f"{strategy.name}: {exc}")
                continue
            self._last_strategy = strategy.name
            logger.debug("Inserted %d chars via %s", len(text), strategy.name)
            return
        raise InsertionError("All insertion mechanisms failed (" + "; ".join(failures) + ")")


STRATEGY_TYPES: dict[str, Callable[[], InsertionStrategy]] = {
    YdotoolInserter.name: YdotoolInserter,
    WtypeInserter.name: WtypeInserter,
    XclipPasteInserter.name: XclipPasteInserter,
    KeystrokeInserter.name: KeystrokeInserter,
    ClipboardPasteInserter.name: ClipboardPasteInserter,
}


def is_wayland(environ: Mapping[str, str]) -> bool:
    return bool(environ.get("WAYLAND_DISPLAY")) or environ.get("XDG_SESSION_TYPE") == "wayland"


def default_strategy_names(
    platform: str = sys.platform,
    environ: Mapping[str, str] | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> list[str]:
    environ = os.environ if environ is None else environ
    if not platform.startswith("linux"):
        return [KeystrokeInserter.name, ClipboardPasteInserter.name]

    names = []
    if is_wayland(environ):
        if which("ydotool"):
            names.append(YdotoolInserter.name)
        if which("wtype"):
            names.append(WtypeInserter.name)
    elif which("xclip") and which("xdotool"):
        names.append(XclipPasteInserter.name)
    names.append(ClipboardPasteInserter.name)
    return names


def create_text_inserter(names: Sequence[str] | None = None) -> ChainedTextInserter:
    names = list(names) if names else default_strategy_names()
    unknown = [name for name in names if name not in STRATEGY_TYPES]
    if unknown:
        raise ValueError(f"Unknown insertion strategies: {', '.join(unknown)}")
    inserter = ChainedTextInserter([STRATEGY_TYPES[name]() for name in names])
    logger.info("Text insertion chain: %s", " -> ".join(inserter.strategy_names))
    return inserter
