import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER = "prerenderer"


class PrerenderFormatter(logging.Formatter):
    """
    Single-line format shared by every prerenderer log:
    [ Tue Jan 06 05:32:41 AM 2026 ] : INFO : prerenderer.render : Message
    """

    def format(self, record):
        dt = datetime.fromtimestamp(record.created)
        timestamp = dt.strftime("%a %b %d %I:%M:%S %p %Y")
        message = f"[ {timestamp} ] : {record.levelname} : {record.name} : {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logger(
    name: str = ROOT_LOGGER,
    log_file: Optional[Union[str, Path]] = None,
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """Set up the prerenderer logger (stderr, plus *log_file* when given)."""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Child loggers propagate to the root prerenderer logger
    if name != ROOT_LOGGER:
        logger.propagate = True
        setup_logger(ROOT_LOGGER, log_file=log_file, level=level)
        return logger

    # Avoid duplicate handlers if setup_logger is called multiple times
    if logger.handlers:
        if log_file and not any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == Path(log_file).resolve()
            for h in logger.handlers
        ):
            logger.addHandler(_file_handler(log_file))
        return logger

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(PrerenderFormatter())
    logger.addHandler(console)

    if log_file:
        logger.addHandler(_file_handler(log_file))

    return logger


def _file_handler(log_file: Union[str, Path]) -> logging.FileHandler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(PrerenderFormatter())
    return handler


def get_logger(name: str) -> logging.Logger:
    """Return a child of the prerenderer logger, e.g. ``get_logger("render")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
