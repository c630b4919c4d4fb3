import logging

LOGGER_NAME = "zkvoting"

ZKVOTING_LOGGER = logging.getLogger(LOGGER_NAME)
ZKVOTING_LOGGER.setLevel(logging.DEBUG)

_console_handler = logging.StreamHandler()
_console_handler.setLevel(logging.INFO)
_console_handler.setFormatter(
    logging.Formatter("%(levelname)s %(asctime)s | %(filename)s:%(lineno)d | %(message)s")
)
ZKVOTING_LOGGER.addHandler(_console_handler)

log = ZKVOTING_LOGGER.log


def update_console_handler(level: int) -> None:
    """Change the verbosity of the console output (e.g. ``logging.DEBUG`` for stage output)."""
    _console_handler.setLevel(level)
