# =============================================================================
# File: telemetry_service/config/logging_config.py
# Description: Logging configuration (Rich console, JSON for production)
# =============================================================================

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from telemetry_service.common.tracing import TraceIdFilter


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(key, '').lower()
    return value in ('true', '1', 'yes', 'on') if value else default


def get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


TELEMETRY_THEME = Theme({
    "logging.level.debug": "magenta dim",
    "logging.level.info": "green",
    "logging.level.warning": "dark_goldenrod",
    "logging.level.error": "red",
    "logging.level.critical": "bold red",
    "log.time": "grey70",
    "log.message": "grey85",
})

# Context attributes copied into JSON records when present (passed via `extra=`)
_CONTEXT_KEYS = (
    "trace_id",
    "device_id",
    "event_id",
    "topic",
    "partition",
    "offset",
    "retry_count",
)

_PLAIN_FORMAT = "[%(asctime)s] [%(levelname)-8s] [%(name)-36s] %(message)s"
_PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ProductionFormatter(logging.Formatter):
    """JSON formatter for production environments"""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key in _CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                log_obj[key] = str(value)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


def get_logger_level_from_env(logger_name: str, default_level: int) -> int:
    """Get logger level from a LOGLEVEL_<NAME> environment variable.

    e.g. "aiokafka" -> "LOGLEVEL_AIOKAFKA",
         "telemetry.publisher" -> "LOGLEVEL_TELEMETRY_PUBLISHER"
    """
    env_name = f"LOGLEVEL_{logger_name.replace('.', '_').upper()}"
    level_str = os.getenv(env_name, '').upper()
    if not level_str:
        return default_level
    level = logging.getLevelName(level_str)
    return level if isinstance(level, int) else default_level


def setup_logging(
        service_name: str = "telemetry",
        log_level: Optional[str] = None,
        log_file: Optional[str] = None,
        enable_json: Optional[bool] = None,
        rich_tracebacks: bool = True,
) -> None:
    """
    Configure process-wide logging.

    Args:
        service_name: Name of the service (e.g., "api", "projection-worker")
        log_level: Override log level (defaults to LOG_LEVEL or INFO)
        log_file: Optional rotating log file path (defaults to LOG_FILE)
        enable_json: Enable JSON formatting (defaults to LOG_JSON_FORMAT, or on in production)
        rich_tracebacks: Enable rich tracebacks on the console handler
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE")

    if enable_json is None:
        enable_json = (
            get_env_bool('LOG_JSON_FORMAT', False)
            or os.getenv('TELEMETRY_ENVIRONMENT', '').lower() == 'production'
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    use_rich = not enable_json and (sys.stdout.isatty() or get_env_bool("FORCE_COLOR", False))

    if use_rich:
        console = Console(
            theme=TELEMETRY_THEME,
            force_terminal=get_env_bool("FORCE_COLOR", False),
            width=get_env_int('LOG_CONSOLE_WIDTH', 0) or None,
        )
        root_logger.addHandler(RichHandler(
            console=console,
            show_path=False,
            rich_tracebacks=rich_tracebacks,
            tracebacks_show_locals=False,
            log_time_format="[%X]",
        ))

    elif enable_json:
        json_handler = logging.StreamHandler(sys.stdout)
        json_handler.setFormatter(ProductionFormatter())
        root_logger.addHandler(json_handler)

    else:
        plain_handler = logging.StreamHandler(sys.stdout)
        plain_handler.setFormatter(logging.Formatter(_PLAIN_FORMAT, datefmt=_PLAIN_DATEFMT))
        root_logger.addHandler(plain_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=get_env_int('LOG_MAX_SIZE_MB', 100) * 1024 * 1024,
            backupCount=get_env_int('LOG_BACKUP_COUNT', 5),
            encoding=os.getenv('LOG_FILE_ENCODING', 'utf-8'),
        )
        # Files always get the plain format
        file_handler.setFormatter(logging.Formatter(_PLAIN_FORMAT, datefmt=_PLAIN_DATEFMT))
        root_logger.addHandler(file_handler)

    trace_filter = TraceIdFilter()
    for handler in root_logger.handlers:
        handler.addFilter(trace_filter)

    default_noise_config = {
        "aiokafka": logging.WARNING,
        "kafka": logging.WARNING,
        "asyncio": logging.WARNING,
        "httpx": logging.WARNING,
        "httpcore": logging.WARNING,
        "asyncpg": logging.WARNING,

        "telemetry.circuit_breaker": logging.INFO,
        "telemetry.retry": logging.INFO,
        "telemetry.publisher": logging.INFO,
        "telemetry.projector": logging.INFO,
    }

    for logger_name, default_level in default_noise_config.items():
        logging.getLogger(logger_name).setLevel(get_logger_level_from_env(logger_name, default_level))

    logging.getLogger(f"telemetry.{service_name}.startup").info(
        f"Logging configured for {service_name} service (level={level}, json={enable_json})"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
