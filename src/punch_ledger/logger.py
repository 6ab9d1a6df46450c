import json
import logging
import os
import sys
from pathlib import Path

from punch_ledger.config_schema import LoggingConfig

TEXT_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FILE = "~/.punch/punch.log"


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg (and exc)."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(debug_format: str, with_name: bool = False) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    fmt = TEXT_FORMAT
    if with_name:
        fmt = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
    return logging.Formatter(fmt, datefmt=DATE_FORMAT)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure logging for the current run.

    Args:
        mode: "cli" logs to stderr (plus *log_file* when given).
              "file" logs only to a file, for runs that hand the terminal
              to an interactive editor.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Log file path (overrides LOG_FILE env var in file mode).
        debug_format: "text" (default) or "json".
        level: Level used when LOG_LEVEL is unset.

    Environment variables:
        LOG_LEVEL: DEBUG, INFO, WARNING or ERROR.
                   Default: WARNING in file mode, INFO in cli mode.
        LOG_FILE: Log file for file mode. Default: ~/.punch/punch.log
    """
    default_level = "WARNING" if mode == "file" else "INFO"
    env_level = os.getenv("LOG_LEVEL", level or default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    handlers: list[logging.Handler] = []
    if mode == "file":
        path = Path(log_file or os.getenv("LOG_FILE", DEFAULT_LOG_FILE))
        path = path.expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a")
        file_handler.setFormatter(_formatter(debug_format, with_name=True))
        handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_formatter(debug_format))
        handlers.append(stderr_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(_formatter(debug_format, with_name=True))
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)


def setup_logging_from_config(
    config: LoggingConfig,
    mode: str = "cli",
    debug: bool = False,
    debug_format: str = "text",
) -> None:
    """Configure logging from the ``logging`` section of the config file."""
    setup_logging(
        mode=mode,
        debug=debug,
        log_file=config.file,
        debug_format=debug_format,
        level=config.level,
    )
