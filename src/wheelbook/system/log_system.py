"""Structured logging for wheelbook.

structlog renders every record, including those emitted through plain
stdlib loggers (SQLAlchemy, click), via ProcessorFormatter handlers on the
root logger: one console handler on stdout and an optional JSON file.

Event names are dotted (``trade_service.trade_closed``); context is passed
as keyword arguments. Entity ids are printed first on the console so a
trade or lot can be followed through the output.
"""

import inspect
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Literal

import structlog
from pydantic import BaseModel, Field

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
TimestampFormat = Literal["iso", "compact", "time", "short"]

DEFAULT_LOG_FILE = Path("logs/wheelbook.log")

# Context keys shown ahead of the rest, in this order
ENTITY_KEYS = ("user_id", "portfolio_id", "trade_id", "share_lot_id")

_LEVEL_COLORS = {
    "debug": "\033[36m",
    "info": "\033[32m",
    "warning": "\033[33m",
    "error": "\033[31m",
    "critical": "\033[35m",
}
_RESET = "\033[0m"
_DIM = "\033[90m"


class LoggingConfig(BaseModel):
    """
    Logging settings.

    Levels as used across the services:
        DEBUG: service wiring, snapshot and report builds
        INFO: committed mutations (trades opened/closed, lots sold)
        WARNING: rejected mutations (conflicts)
        ERROR: transactions rolled back on storage failure

    Timestamp formats (console and file):
        iso      2026-06-15T14:30:07.288824+00:00
        compact  260615-143007.28
        time     14:30:07.28
        short    0615T143007
    """

    level: LogLevel = Field(default="INFO", description="Console threshold")
    format: Literal["console", "json"] = Field(default="console", description="Console renderer")
    timestamp_format: TimestampFormat = Field(default="compact")
    enable_file: bool = Field(default=False, description="Also write JSON lines to file_path")
    file_path: Path | None = Field(default=None, description="Log file (logs/wheelbook.log when unset)")
    file_level: LogLevel = Field(default="WARNING", description="File threshold, independent of level")
    file_rotation: bool = Field(default=True)
    max_file_size_mb: int = Field(default=10, description="Rotate after this many MB")
    backup_count: int = Field(default=3, description="Rotated files kept")
    console_width: int = Field(default=0, description="Truncate console context past this width (0 = never)")


def _stamp(fmt: str) -> Callable[[Any, str, dict[str, Any]], dict[str, Any]]:
    """Processor adding ``log_timestamp`` (kept apart from created_at/closed_at context)."""

    def add_log_timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        centis = f"{now.microsecond // 10000:02d}"
        if fmt == "compact":
            value = now.strftime("%y%m%d-%H%M%S.") + centis
        elif fmt == "time":
            value = now.strftime("%H:%M:%S.") + centis
        elif fmt == "short":
            value = now.strftime("%m%dT%H%M%S")
        else:
            value = now.isoformat()
        event_dict["log_timestamp"] = value
        return event_dict

    return add_log_timestamp


def _console_line(console_width: int) -> Callable[[Any, str, dict[str, Any]], str]:
    """``<ts> [level] event | ids... key=value ... (module:line)``"""

    def render(logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        stamp = event_dict.pop("log_timestamp", "")
        level = str(event_dict.pop("level", "info")).lower()
        event = event_dict.pop("event", "")
        filename = event_dict.pop("filename", "")
        lineno = event_dict.pop("lineno", "")
        event_dict.pop("logger", None)

        pairs = [f"{key}={event_dict.pop(key)}" for key in ENTITY_KEYS if key in event_dict]
        pairs += [f"{key}={value}" for key, value in sorted(event_dict.items()) if not key.startswith("_")]
        context = " ".join(pairs)
        if console_width > 0 and len(context) > console_width:
            context = context[: max(console_width - 3, 0)] + "..."

        line = f"{stamp} [{_LEVEL_COLORS.get(level, '')}{level}{_RESET}] {event}"
        if context:
            line += f" {_DIM}|{_RESET} {context}"
        if filename and lineno:
            line += f" {_DIM}({Path(filename).stem}:{lineno}){_RESET}"
        return line

    return render


class LoggerFactory:
    """
    Process-wide structlog setup.

    Modules call ``LoggerFactory.get_logger()`` at import; the first call
    configures defaults unless the CLI already called ``configure()``.

    Example:
        >>> LoggerFactory.configure(LoggingConfig(level="DEBUG"))
        >>> logger = LoggerFactory.get_logger()
        >>> logger.info("trade_service.trade_closed", trade_id="t-1", realized="510.00")
    """

    _config: LoggingConfig | None = None
    _configured: bool = False

    @classmethod
    def configure(cls, config: LoggingConfig | None = None) -> None:
        """Install handlers on the root logger and configure structlog (replaces any previous setup)."""
        config = config or LoggingConfig()
        cls._config = config

        pre_chain = cls._pre_chain(config.timestamp_format)
        console = logging.StreamHandler(stream=sys.stdout)
        console.setLevel(config.level)
        console.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=(
                    _console_line(config.console_width)
                    if config.format == "console"
                    else structlog.processors.JSONRenderer()
                ),
                foreign_pre_chain=pre_chain,
            )
        )
        handlers: list[logging.Handler] = [console]
        root_level = logging.getLevelName(config.level)

        if config.enable_file:
            if config.file_path is None:
                config.file_path = DEFAULT_LOG_FILE
            handlers.append(cls._file_handler(config, pre_chain))
            root_level = min(root_level, logging.getLevelName(config.file_level))

        logging.basicConfig(level=root_level, handlers=handlers, force=True)

        if config.format == "console":
            exc_processors: list[Any] = [
                structlog.dev.set_exc_info,
                structlog.processors.ExceptionRenderer(structlog.dev.plain_traceback),  # type: ignore[arg-type]
            ]
        else:
            exc_processors = [structlog.processors.format_exc_info]

        structlog.configure(
            processors=[*pre_chain, *exc_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        cls._configured = True

    @staticmethod
    def _pre_chain(timestamp_format: str) -> list[Any]:
        return [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            _stamp(timestamp_format),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.CallsiteParameterAdder(
                [structlog.processors.CallsiteParameter.FILENAME, structlog.processors.CallsiteParameter.LINENO]
            ),
        ]

    @staticmethod
    def _file_handler(config: LoggingConfig, pre_chain: list[Any]) -> logging.Handler:
        """JSON-lines file handler, rotating unless file_rotation is off."""
        path = config.file_path or DEFAULT_LOG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        handler: logging.Handler
        if config.file_rotation:
            handler = RotatingFileHandler(
                path,
                maxBytes=config.max_file_size_mb * 1024 * 1024,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        else:
            handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(config.file_level)
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=pre_chain,
            )
        )
        return handler

    @classmethod
    def get_logger(cls, name: str | None = None):
        """Logger named after the calling module unless a name is given."""
        if not cls._configured:
            cls.configure()
        if name is None:
            caller = inspect.currentframe()
            caller = caller.f_back if caller else None
            name = caller.f_globals.get("__name__", "wheelbook") if caller else "wheelbook"
        return structlog.get_logger(name)

    @classmethod
    def get_config(cls) -> LoggingConfig:
        return cls._config if cls._config is not None else LoggingConfig()

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def reset(cls) -> None:
        """Drop all root handlers and structlog configuration (tests and CLI re-entry)."""
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        root.setLevel(logging.NOTSET)
        cls._config = None
        cls._configured = False
        structlog.reset_defaults()
