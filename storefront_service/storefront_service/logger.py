"""Logger module for the storefront service."""

from logging_utils import configure_logging, get_kafka_logger, get_logger

from .config import Settings

SERVICE_NAME = "storefront"

logger = get_logger(SERVICE_NAME)
kafka_logger = get_kafka_logger(SERVICE_NAME)


def setup_logging(settings: Settings) -> None:
    """Install log sinks according to the service settings."""
    configure_logging(
        log_level=settings.log_level,
        log_file=settings.log_file,
        serialize=settings.log_json,
    )


__all__ = ["logger", "kafka_logger", "setup_logging", "get_logger"]
