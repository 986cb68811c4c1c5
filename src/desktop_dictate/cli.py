import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from dataclasses import asdict
from pathlib import Path

from desktop_dictate.config import DictateConfig
from desktop_dictate.domain.controller import DictationController
from desktop_dictate.log_format import configure_logging
from desktop_dictate.ports.control import ControlCommand

ENV_FILE_PATH = Path.home() / ".config" / "desktop-dictate" / "env"
CLIENT_COMMANDS = ("toggle", "start", "stop", "status", "history", "clear-history")

logger = logging.getLogger(__name__)


def _load_env_file(path: Path = ENV_FILE_PATH) -> None:
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="desktop-dictate",
        description="Dictate into the focused window with real-time speech recognition",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--language",
        action="append",
        dest="language_hints",
        help="Language hint for the recognizer (repeatable)",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("toggle", help="Start or stop dictation")
    subparsers.add_parser("start", help="Start dictation")
    subparsers.add_parser("stop", help="Stop dictation")
    subparsers.add_parser("status", help="Query daemon status")
    subparsers.add_parser("history", help="Print recent transcriptions")
    subparsers.add_parser("clear-history", help="Delete transcription history")
    return parser


def main() -> None:
    _load_env_file()
    args = build_parser().parse_args()

    config = DictateConfig()
    if args.language_hints:
        config.language_hints = args.language_hints

    if args.command in CLIENT_COMMANDS:
        configure_logging(verbose=args.verbose)
        asyncio.run(_run_client_command(args.command, config))
    else:
        configure_logging(verbose=args.verbose, log_file=config.log_file)
        asyncio.run(_run_daemon(config))


async def _run_client_command(command: str, config: DictateConfig) -> None:
    from desktop_dictate.adapters.unix_control import UnixSocketControlClient

    client = UnixSocketControlClient(socket_path=config.socket_path)

    try:
        result = await client.send_command(command)
    except (ConnectionRefusedError, FileNotFoundError):
        print("desktop-dictate is not running", file=sys.stderr)
        sys.exit(1)

    if command == "history" and result.get("status") == "ok":
        for entry in result.get("entries", []):
            print(f"[{entry['timestamp']}] ({entry['language']}) {entry['text']}")
        return
    print(json.dumps(result))
    if result.get("status") != "ok":
        sys.exit(1)


async def handle_command(controller: DictationController, command: ControlCommand) -> dict:
    action = command.action
    if action == "toggle":
        controller.toggle()
        return {"status": "ok", "action": action, "recording": controller.recording}
    if action == "start":
        started = controller.start()
        return {"status": "ok" if started else "error", "action": action}
    if action == "stop":
        stopped = controller.stop()
        return {"status": "ok" if stopped else "error", "action": action}
    if action == "status":
        return {"status": "ok", "action": action, **controller.status()}
    if action == "history":
        entries = [asdict(entry) for entry in controller.history.entries()]
        return {"status": "ok", "action": action, "entries": entries}
    if action == "clear-history":
        controller.history.clear()
        return {"status": "ok", "action": action}
    return {"status": "error", "action": action, "message": f"Unknown command: {action}"}


async def _run_daemon(config: DictateConfig) -> None:
    from desktop_dictate.adapters.unix_control import UnixSocketControlServer
    from desktop_dictate.factory import create_controller
    from desktop_dictate.health import has_critical_failures, run_startup_checks

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logger.error("Critical health check failures, aborting startup")
        sys.exit(1)

    controller = create_controller(config)
    control = UnixSocketControlServer(socket_path=config.socket_path)

    shutdown_event = asyncio.Event()
    shutdown_triggered = False

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logger.warning("Forced exit")
            sys.exit(1)
        shutdown_triggered = True
        logger.info("Shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    async def dispatch(command: ControlCommand) -> dict:
        return await handle_command(controller, command)

    await control.start(dispatch)
    logger.info("desktop-dictate ready; run 'desktop-dictate toggle' to dictate")

    try:
        await shutdown_event.wait()
    finally:
        await control.stop()
        try:
            await asyncio.wait_for(controller.shutdown(), timeout=config.finalize_timeout_seconds + 3.0)
        except asyncio.TimeoutError:
            logger.warning("Recording did not finish before shutdown timeout")
