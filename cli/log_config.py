import logging
import sys
from pathlib import Path

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <5}</level> | "
    "<cyan>{extra[module_name]}</cyan> - {message}"
)


def add_module_name(record):
    """Ensure every record has module_name in extra."""
    if "module_name" not in record["extra"]:
        record["extra"]["module_name"] = f"{record['name']}:{record['line']}"
    return True


class InterceptHandler(logging.Handler):
    """Forward stdlib records (the core package) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Core loggers are named after their module, e.g. core.batsim.storage
        source = Path(record.pathname).stem if record.name == "root" else record.name
        logger.bind(module_name=f"{source}:{record.lineno}").log(level, record.getMessage())


def setup_logging(level: str = "INFO") -> None:
    """Route loguru and stdlib logging to stderr at the given level."""
    level = level.upper()

    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=level,
        colorize=True,
        filter=add_module_name,
    )

    # The core package logs through stdlib logging
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
