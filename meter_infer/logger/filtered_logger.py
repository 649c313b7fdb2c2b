from enum import Enum

from meter_infer.env_utils import parse_bool_env


class LogChannel(Enum):
    GLOBAL = "GLOBAL"
    ENGINE = "ENGINE"
    PREPROCESS = "PREPROCESS"
    INFERENCE = "INFERENCE"
    POSTPROCESS = "POSTPROCESS"


class LogLevel(Enum):
    INFO = "INFO"
    WARNING = "WARN"
    ERROR = "ERROR"
    DEBUG = "DEBUG"


class FilteredLogger:
    def __init__(self):
        self.extreme_debug = parse_bool_env('EXTREME_DEBUG', '0')
        self.engine_debug = parse_bool_env('ENGINE_DEBUG_LOGS', '0')
        self.preprocess_debug = parse_bool_env('PREPROCESS_DEBUG_LOGS', '0')
        self.postprocess_debug = parse_bool_env('POSTPROCESS_DEBUG_LOGS', '0')

    def configure(self, *, extreme_debug=None, engine_debug=None, preprocess_debug=None, postprocess_debug=None):
        if extreme_debug is not None:
            self.extreme_debug = extreme_debug
        if engine_debug is not None:
            self.engine_debug = engine_debug
        if preprocess_debug is not None:
            self.preprocess_debug = preprocess_debug
        if postprocess_debug is not None:
            self.postprocess_debug = postprocess_debug

    def should_log_debug(self, channel):
        if self.extreme_debug:
            return True
        if channel == LogChannel.GLOBAL:
            return self.engine_debug or self.preprocess_debug or self.postprocess_debug
        if channel in (LogChannel.ENGINE, LogChannel.INFERENCE):
            return self.engine_debug
        if channel == LogChannel.PREPROCESS:
            return self.preprocess_debug
        if channel == LogChannel.POSTPROCESS:
            return self.postprocess_debug
        return False

    def _print(self, level, channel, message):
        prefix = f"[{level.value}]"
        channel_tag = f"[{channel.value}]"
        for line in str(message).splitlines():
            print(f"{prefix} {channel_tag} {line}")

    def info(self, channel, message):
        self._print(LogLevel.INFO, channel, message)

    def warning(self, channel, message):
        self._print(LogLevel.WARNING, channel, message)

    def error(self, channel, message):
        self._print(LogLevel.ERROR, channel, message)

    def debug(self, channel, message):
        if not self.should_log_debug(channel):
            return
        self._print(LogLevel.DEBUG, channel, message)


_shared_logger = FilteredLogger()


def get_logger():
    """Return the process-wide logger used when a component is built without one."""
    return _shared_logger


def configure_logger(**kwargs):
    _shared_logger.configure(**kwargs)
