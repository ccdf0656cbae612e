"""
Logging configuration

Modules log through the stdlib (``logging.getLogger(__name__)``); everything
ends up in loguru sinks tagged with the service name.
"""
import logging
import sys
from pathlib import Path

from loguru import logger
from scarlett.core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[service]} | {name}:{function}:{line} - {message}"

INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "httpx")


class InterceptHandler(logging.Handler):
    """
    Forward stdlib log records to loguru, keeping the original caller
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so {name}:{function}:{line} point at the caller
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = None):
    """
    Install loguru sinks and route stdlib logging (ours, uvicorn's, httpx's) into them

    Args:
        level: Minimum level (default: settings.LOG_LEVEL)
    """
    level = level or settings.LOG_LEVEL

    logger.remove()
    logger.configure(extra={"service": settings.APP_NAME})

    logger.add(
        sys.stdout,
        enqueue=True,
        colorize=True,
        format=CONSOLE_FORMAT,
        level=level,
    )

    if settings.ENVIRONMENT == "production":
        log_path = Path("logs")
        log_path.mkdir(exist_ok=True)

        logger.add(
            log_path / "scarlett_{time:YYYY-MM-DD}.log",
            rotation="500 MB",
            retention="30 days",
            enqueue=True,
            level=level,
            format=FILE_FORMAT,
        )

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(level)

    # Everything else propagates to the root handler
    for name in list(logging.root.manager.loggerDict.keys()):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    for name in INTERCEPTED_LOGGERS:
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False

    logger.info(f"Logging configured - Level: {level}, Environment: {settings.ENVIRONMENT}")
