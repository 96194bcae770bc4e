import logging
import logging.handlers
import sys
from pathlib import Path

# Constants
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "mdreader.log"
LOG_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5

LOGGER_NAME = "mdreader"
FILE_HANDLER_NAME = "mdreader-file"
CONSOLE_HANDLER_NAME = "mdreader-console"

# Libraries the reader drives, and how much of their chatter reaches the log.
# Python-Markdown logs every extension it loads per render under "MARKDOWN".
LIBRARY_LEVELS = {
    "MARKDOWN": logging.WARNING,
    "bleach": logging.WARNING,
    "latex2mathml": logging.WARNING,
    "werkzeug": logging.WARNING,
}

logger = logging.getLogger(__name__)


def _file_handler(log_file: Path) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_SIZE,
        backupCount=LOG_BACKUP_COUNT,
        encoding='utf-8'
    )
    handler.set_name(FILE_HANDLER_NAME)
    handler.setLevel(logging.DEBUG)  # file always gets the detail
    return handler


def _console_handler(debug_mode: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(CONSOLE_HANDLER_NAME)
    handler.setLevel(logging.DEBUG if debug_mode else logging.INFO)
    return handler


def remove_handlers() -> None:
    """Detach and close the handlers installed by `setup_logging`."""
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if handler.get_name() in (FILE_HANDLER_NAME, CONSOLE_HANDLER_NAME):
            root_logger.removeHandler(handler)
            handler.close()


def setup_logging(log_dir: Path, debug_mode: bool = False) -> Path:
    """
    Send the reader's log records to a rotating file in `log_dir` and to stdout.

    Calling it again (the Flask reloader does) replaces the reader's own
    handlers; handlers installed by anyone else stay attached. Library
    loggers are held at WARNING, except werkzeug's request log in debug mode.
    Python warnings (for example deprecations raised inside markdown
    extensions) are routed into the log too.

    Returns the path of the log file.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    remove_handlers()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    root_logger = logging.getLogger()
    for handler in (_file_handler(log_file), _console_handler(debug_mode)):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if debug_mode else logging.INFO)
    logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG if debug_mode else logging.INFO)

    for name, level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level)
    if debug_mode:
        logging.getLogger("werkzeug").setLevel(logging.INFO)
    logging.captureWarnings(True)

    logger.info(f"Logging initialized. Log file: {log_file}")
    return log_file
