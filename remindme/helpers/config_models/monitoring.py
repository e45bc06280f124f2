from enum import Enum

from pydantic import BaseModel


class LoggingLevelEnum(str, Enum):
    # Same names as https://docs.python.org/3.13/library/logging.html#logging-levels
    CRITICAL = "CRITICAL"
    DEBUG = "DEBUG"
    ERROR = "ERROR"
    INFO = "INFO"
    WARNING = "WARNING"


class LoggingModel(BaseModel):
    app_level: LoggingLevelEnum = LoggingLevelEnum.INFO
    json_format: bool = False
    """Render one JSON object per line instead of the console layout."""
    sys_level: LoggingLevelEnum = LoggingLevelEnum.WARNING


class TracingModel(BaseModel):
    instrument_transports: bool = True
    """Instrument the SQLite and HTTPX clients used by the backends."""


class MonitoringModel(BaseModel):
    logging: LoggingModel = LoggingModel()  # Object is fully defined by default
    tracing: TracingModel = TracingModel()  # Object is fully defined by default
