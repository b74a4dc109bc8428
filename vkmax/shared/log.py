#!/usr/bin/env python3
"""
vkmax Logging Configuration

Centralized logging setup for consistent formatting across the library and CLI.
Supports both development (colored console) and production (plain console,
optional file) modes.

Usage:
    from vkmax.shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.debug("-> REQUEST", extra={"seq": 3, "opcode": 64})
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from vkmax.shared.envelope import RpcEnvelope


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"

        return super().format(record)


class GenericFormatter(logging.Formatter):
    """Prefixes RPC context (seq, opcode, chat) taken from the record's extra data"""

    def format(self, record: logging.LogRecord) -> str:
        rpc_context = []

        if hasattr(record, 'seq') and record.seq is not None:
            rpc_context.append(f"seq={record.seq}")
        if hasattr(record, 'opcode') and record.opcode is not None:
            rpc_context.append(f"opcode={record.opcode}")
        if hasattr(record, 'chat_id') and record.chat_id is not None:
            rpc_context.append(f"chat={record.chat_id}")

        if rpc_context:
            context_str = f"[{' '.join(rpc_context)}] "
            record.msg = f"{context_str}{record.msg}"

        return super().format(record)


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    if _is_development():
        _add_console_handler(logger, colored=True)
    else:
        _add_console_handler(logger, colored=False)

    log_file = os.getenv('VKMAX_LOG_FILE')
    if log_file:
        _add_file_handler(logger, Path(log_file))

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    level = level or os.getenv('VKMAX_LOG_LEVEL')
    if level:
        return getattr(logging, level.upper(), logging.INFO)

    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('VKMAX_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules
    )


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stderr)

    if colored and _supports_color():
        formatter = ColoredFormatter(
            fmt=fmt,
            datefmt='%H:%M:%S'
        )
    else:
        formatter = GenericFormatter(
            fmt=fmt,
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, log_file: Path) -> None:
    """Add file handler writing to ``log_file``"""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    if not (hasattr(sys.stderr, "isatty") and sys.stderr.isatty()):
        return False

    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode"

    return True

# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup (the CLI does).

    Args:
        level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
    """
    root_logger = logging.getLogger()
    _configure_logger(root_logger, level)

    # vkmax loggers do not propagate, so they take the level directly
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(_get_log_level(level))


def log_frame(logger: logging.Logger, level: str, message: str,
              frame: Optional["RpcEnvelope"] = None,
              **context: Any) -> None:
    """
    Log an RPC frame with structured context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        message: Log message
        frame: Envelope whose seq/opcode are attached as context
        **context: Additional context fields

    Example:
        log_frame(logger, "debug", "<- EVENT", frame=frame)
    """
    log_func = getattr(logger, level.lower())
    if not logger.isEnabledFor(getattr(logging, level.upper())):
        return

    extra_context = {}
    if frame is not None:
        extra_context.update({
            'seq': frame.seq,
            'opcode': frame.opcode,
        })
        message = f"{message}: {frame.to_json()}"

    extra_context.update(context)
    log_func(message, extra=extra_context)
