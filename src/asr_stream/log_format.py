import logging

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

PLAIN_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
DATE_FORMAT = "%H:%M:%S"


class ColoredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelno, "")
        level = record.levelname
        time = self.formatTime(record, self.datefmt)
        name = record.name.split(".")[-1]
        msg = record.getMessage()

        if "State:" in msg and "->" in msg:
            msg = f"{BOLD}{CYAN}{msg}{RESET}"
        elif msg.startswith("Session created"):
            msg = f"{BOLD}{GREEN}{msg}{RESET}"
        elif msg.startswith("Transcript:"):
            msg = f"{CYAN}{msg}{RESET}"
        elif msg.startswith("Speech started") or msg.startswith("Speech stopped"):
            msg = f"{MAGENTA}{msg}{RESET}"
        elif record.levelno == logging.DEBUG:
            msg = f"{DIM}{msg}{RESET}"
        elif record.levelno >= logging.WARNING:
            msg = f"{color}{msg}{RESET}"

        return f"{DIM}{time}{RESET} {color}{level:<5}{RESET} {DIM}{name:<20}{RESET} {msg}"


def build_stderr_handler(stream, colored: bool) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    if colored:
        handler.setFormatter(ColoredFormatter(datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=DATE_FORMAT))
    return handler
