"""
Centralized logging configuration for the email conversion service.

This module provides:
- One place where the root logger is configured
- Environment-based level, format and file output
- A small factory so modules share configured loggers
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Dict, Optional


# ===== LOGGING CONFIGURATION =====

class LogLevel:
    """Standard log levels with string lookup."""

    @staticmethod
    def from_string(level_str: str) -> int:
        """Convert string log level to integer."""
        level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'WARN': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL,
        }
        return level_map.get(level_str.strip().upper(), logging.INFO)


class LogConfig:
    """Environment-driven logging settings."""

    DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    DEV_FORMAT = '%(asctime)s [%(levelname)8s] %(name)s:%(lineno)d - %(message)s'

    JSON_FORMAT = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'

    @staticmethod
    def get_log_level() -> int:
        """Get log level from LOG_LEVEL, defaulting to INFO (WARNING under pytest)."""
        level_str = os.getenv('LOG_LEVEL')
        if level_str:
            return LogLevel.from_string(level_str)

        if 'pytest' in sys.modules or 'PYTEST_CURRENT_TEST' in os.environ:
            return logging.WARNING

        return logging.INFO

    @staticmethod
    def get_log_format() -> str:
        """Get log format from LOG_FORMAT (standard, dev or json)."""
        format_type = os.getenv('LOG_FORMAT', 'standard').lower()

        if format_type in ('dev', 'development'):
            return LogConfig.DEV_FORMAT
        if format_type == 'json':
            return LogConfig.JSON_FORMAT
        return LogConfig.DEFAULT_FORMAT

    @staticmethod
    def should_log_to_file() -> bool:
        return os.getenv('LOG_TO_FILE', 'false').lower() in ('true', '1', 'yes')

    @staticmethod
    def get_log_file_path() -> Optional[Path]:
        log_file = os.getenv('LOG_FILE')
        return Path(log_file) if log_file else None


# ===== LOGGER FACTORY =====

class LoggerFactory:
    """Factory for creating loggers on top of a configured root logger."""

    _loggers: Dict[str, logging.Logger] = {}
    _configured = False

    @classmethod
    def configure_logging(cls) -> None:
        """Configure the root logger once per process from the environment."""
        if cls._configured:
            return

        log_level = LogConfig.get_log_level()
        formatter = logging.Formatter(LogConfig.get_log_format())

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        # Replace handlers installed by earlier basicConfig calls
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        log_file_path = LogConfig.get_log_file_path()
        if LogConfig.should_log_to_file() and log_file_path:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file_path,
                maxBytes=10*1024*1024,  # 10MB
                backupCount=5
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        cls._configured = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get or create a logger with the given name."""
        if name not in cls._loggers:
            cls.configure_logging()
            cls._loggers[name] = logging.getLogger(name)
        return cls._loggers[name]


# ===== UTILITY FUNCTIONS =====

def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a configured logger, named after the calling module by default."""
    if name is None:
        frame = sys._getframe(1)
        name = frame.f_globals.get('__name__', 'emailconvert')
    return LoggerFactory.get_logger(name)
