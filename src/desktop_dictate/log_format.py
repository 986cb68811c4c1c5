import logging
import sys

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
CYAN = "\033[36m"
MAGENTA = "\033[35m"

LEVEL_COLORS = {
    logging.DEBUG: DIM,
    logging.INFO: GREEN,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED + BOLD,
}

# First matching prefix wins.
MESSAGE_HIGHLIGHTS: list[tuple[str, str]] = [
    ("Phase:", BOLD + CYAN),
    ("Transcript:", CYAN),
    ("Session complete", BOLD + GREEN),
    ("Starting recording", BOLD + MAGENTA),
    ("Stopping recording", BOLD + MAGENTA),
    ("End marker sent", MAGENTA),
    ("Recognizer finished", MAGENTA),
]

FILE_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


class ColoredFormatter(logging.Formatter):
    def __init__(self, datefmt: str = "%H:%M:%S", use_color: bool = True) -> None:
        super().__init__(datefmt=datefmt)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        time = self.formatTime(record, self.datefmt)
        name = record.name.rsplit(".", 1)[-1]
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"

        if not self._use_color:
            return f"{time} {record.levelname:<7} {name:<18} {msg}"

        level_color = LEVEL_COLORS.get(record.levelno, "")
        style = self._message_style(record, level_color)
        if style:
            msg = f"{style}{msg}{RESET}"
        return f"{DIM}{time}{RESET} {level_color}{record.levelname:<7}{RESET} {DIM}{name:<18}{RESET} {msg}"

    @staticmethod
    def _message_style(record: logging.LogRecord, level_color: str) -> str:
        if record.levelno >= logging.WARNING:
            return level_color
        text = record.getMessage()
        for prefix, style in MESSAGE_HIGHLIGHTS:
            if text.startswith(prefix):
                return style
        return DIM if record.levelno == logging.DEBUG else ""


def configure_logging(verbose: bool = False, log_file: str = "") -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    console = logging.StreamHandler()
    console.setFormatter(ColoredFormatter(use_color=sys.stderr.isatty()))
    root.addHandler(console)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
        except OSError as exc:
            logging.getLogger(__name__).warning("Cannot open log file %s: %s", log_file, exc)
        else:
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            root.addHandler(file_handler)

    # websockets logs every frame at DEBUG.
    logging.getLogger("websockets").setLevel(logging.INFO)
