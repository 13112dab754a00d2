"""Logging configuration shared by every storefront component."""

import sys
from typing import Optional

from loguru import logger as loguru_logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[service]} | {name}:{function}:{line} - {message}"


def configure_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    serialize: bool = False,
) -> None:
    """Install the process-wide loguru sinks.

    Called once at service start-up. Loggers handed out by ``get_logger``
    before or after this call share the same sinks.

    Args:
        log_level: Minimum level for every sink (default: INFO)
        log_file: Optional path to a rotating log file
        serialize: Emit one JSON document per record instead of text
    """
    loguru_logger.remove()
    loguru_logger.configure(extra={"service": "storefront"})

    loguru_logger.add(
        sys.stderr,
        level=log_level,
        format=CONSOLE_FORMAT,
        colorize=not serialize,
        serialize=serialize,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        loguru_logger.add(
            log_file,
            level=log_level,
            format=FILE_FORMAT,
            serialize=serialize,
            rotation="10 MB",
            retention="1 week",
            compression="gz",
            enqueue=True,
        )


def get_logger(component: str):
    """Get a logger bound to a component name.

    Args:
        component: Name of the component (e.g., 'storefront.orders')

    Returns:
        logger: loguru logger carrying ``service=<component>``
    """
    return loguru_logger.bind(service=component)


def get_kafka_logger(service_name: str):
    """Get a logger for Kafka producer and consumer code.

    Args:
        service_name: Name of the service

    Returns:
        logger: Logger bound with the Kafka context
    """
    return get_logger(f"{service_name}.kafka")
