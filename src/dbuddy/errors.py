"""
Error Handling and Logging for dbuddy

Provides the exception hierarchy raised by the migration runner and the
centralized logging configuration used by the command line driver.
"""

import logging
import sys
from typing import Optional


# Custom exception classes for better error categorization
class DbuddyError(Exception):
    """Base exception for dbuddy errors"""
    pass


class ConfigurationError(DbuddyError):
    """Invalid configuration value"""
    def __init__(self, message: str, setting: str = "Unknown"):
        super().__init__(message)
        self.setting = setting


class MigrationError(DbuddyError):
    """Base exception for migration runner failures"""
    pass


class MigrationFilesystemError(MigrationError):
    """Migrations directory or migration files cannot be created or read"""
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class InvalidMigrationNameError(MigrationError):
    """Migration name is empty after sanitising"""
    def __init__(self, message: str, name: str = ""):
        super().__init__(message)
        self.name = name


class MigrationExecutionError(MigrationError):
    """
    A migration's SQL (or its tracking row) failed.

    The migration's transaction has already been rolled back when this is
    raised; the original driver error is available as ``__cause__``.
    """
    def __init__(self, message: str, version: str, name: str, direction: str):
        super().__init__(message)
        self.version = version
        self.name = name
        self.direction = direction

    @property
    def key(self) -> str:
        return f"{self.version}_{self.name}"


class LoggingManager:
    """
    Centralized logging configuration and management
    """

    @staticmethod
    def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
        """
        Setup logging configuration

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_file: Optional log file path
        """
        level = getattr(logging, log_level.upper())

        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        # Setup root logger
        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        # Console handler, unless the application configured one already
        if not root_logger.handlers:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            root_logger.addHandler(console_handler)

        # File handler (if specified)
        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        logging.getLogger('dbuddy').setLevel(level)

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        """Get a logger under the dbuddy namespace"""
        return logging.getLogger(f"dbuddy.{name}")
