import os
import sys
import logging
from logging.handlers import RotatingFileHandler
from contextvars import ContextVar
from typing import Dict, Mapping, Optional, Union

# Request ID of the API call being served; "SYSTEM" outside of a request
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="SYSTEM")

# [Time] [Level] [Module] [Req: ID] - Message
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] [Req: %(request_id)s] - %(message)s"

Level = Union[int, str]

# Applied on every setup; LOG_LEVELS entries win over these.
DEFAULT_LOGGER_LEVELS: Dict[str, Level] = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    # Document writes are logged at DEBUG
    "invoice_inbox.domain.store": logging.INFO,
    # One line per refreshed chat thread
    "client.polling": logging.WARNING,
}


class RequestIdFilter(logging.Filter):
    """
    Injects the Request ID into the log record.
    """
    def filter(self, record):
        record.request_id = request_id_ctx.get()
        return True


def parse_level(value: Level) -> int:
    """Accepts a logging constant or a level name such as "debug" or "WARNING"."""
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level '{value}'")
    return level


def parse_logger_levels(entries: Optional[str]) -> Dict[str, int]:
    """
    Parses "name=LEVEL,name=LEVEL" into {name: level}.
    Blank entries are skipped; a malformed entry or an unknown level raises ValueError.
    """
    levels: Dict[str, int] = {}
    for entry in (entries or "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, level = entry.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Invalid logger level entry '{entry}', expected name=LEVEL")
        levels[name.strip()] = parse_level(level)
    return levels


def setup_logging(
    log_dir: str = "logs",
    log_file: str = "inbox.log",
    level: Level = logging.INFO,
    logger_levels: Optional[Mapping[str, Level]] = None,
) -> str:
    """
    Configures the root logger with File and Console handlers and returns the log file path.
    Every handler shares one format so API, store and client lines interleave cleanly.
    logger_levels is layered over DEFAULT_LOGGER_LEVELS.
    """
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, log_file)
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=5*1024*1024, # 5MB
        backupCount=3,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler(sys.stdout)
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(parse_level(level))

    # Drop and close the handlers of a previous setup
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    overrides = {**DEFAULT_LOGGER_LEVELS, **(logger_levels or {})}
    for name, logger_level in overrides.items():
        logging.getLogger(name).setLevel(parse_level(logger_level))

    return log_path


def get_logger(name: str) -> logging.Logger:
    """
    Returns a module logger. The request id is attached by the handlers set up
    in setup_logging, so loggers created before setup still pick it up.
    """
    return logging.getLogger(name)
