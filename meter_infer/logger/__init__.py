from meter_infer.logger.filtered_logger import (
    FilteredLogger,
    LogChannel,
    LogLevel,
    configure_logger,
    get_logger,
)

__all__ = [
    "FilteredLogger",
    "LogChannel",
    "LogLevel",
    "configure_logger",
    "get_logger",
]
