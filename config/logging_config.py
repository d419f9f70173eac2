"""
Centralized logging configuration for the Policy Assistant.

This module provides a function to set up application-wide logging, including
structured (JSON) formatting, log levels, and handlers for console and file output.
It also provides `get_logger`, which returns an adapter that stamps every record
with conversation-scoped context such as the conversation id and the turn id, so a
single turn can be followed through the orchestrator, the tool dispatcher and the
capabilities even when several turns are being served at the same time.
"""

import logging
import logging.handlers # Required for RotatingFileHandler
import os
import sys # To ensure we can always output to stdout for console
import json

# Context fields copied from the record into the JSON payload when present
CONTEXT_FIELDS = ('conversation_id', 'turn_id', 'tool_name', 'elapsed_ms', 'error_code')


class StructuredLogFormatter(logging.Formatter):
    """
    Custom formatter that renders each record as one JSON object.

    Features:
    - Includes conversation_id and turn_id if present in extra fields
    - Includes tool_name, elapsed_ms and error_code when a component sets them
    - Preserves standard log fields (timestamp, level, logger, message)
    """

    def format(self, record):
        log_data = {
            'timestamp': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage()
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ContextLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its bound context with any per-call ``extra``."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def bind(self, **context) -> 'ContextLoggerAdapter':
        """Return a new adapter with additional context. The current adapter is not modified."""
        return ContextLoggerAdapter(self.logger, {**self.extra, **context})


def get_logger(name: str, **context) -> ContextLoggerAdapter:
    """
    Get a logger adapter carrying conversation-scoped context.

    A fresh adapter is created on every call, so per-turn context never leaks
    between concurrent turns.

    Args:
        name (str): Logger name (usually __name__)
        **context: Fields added to every record, e.g. conversation_id, turn_id.

    Returns:
        ContextLoggerAdapter: Configured logger adapter
    """
    base_context = {'conversation_id': 'no_id', 'turn_id': 'no_turn'}
    base_context.update(context)
    return ContextLoggerAdapter(logging.getLogger(name), base_context)


def setup_app_logging(config: dict = None, default_level=logging.INFO) -> None:
    """
    Set up logging for the entire application.

    This function configures the root logger with handlers for console
    and file output. Log levels and file paths can be specified via
    the optional config dictionary.

    Args:
        config (dict, optional): A dictionary containing logging configurations.
                                Expected keys:
                                - 'level': String representation of log level (e.g., "DEBUG", "INFO").
                                - 'file_path': Path to the log file. Empty disables file logging.
                                - 'max_bytes': Max size of the log file before rotation.
                                - 'backup_count': Number of backup log files to keep.
                                - 'format': Custom log format string.
                                - 'date_format': Custom log date format string.
        default_level (int, optional): The default logging level if not specified
                                     in the config. Defaults to logging.INFO.
    """
    if config is None:
        config = {}

    log_level_str = str(config.get('level', logging.getLevelName(default_level))).upper()
    numeric_log_level = getattr(logging, log_level_str, default_level)
    if not isinstance(numeric_log_level, int):
        print(f"Warning: Invalid log level string '{log_level_str}'. Using default level {logging.getLevelName(default_level)}.", file=sys.stderr)
        numeric_log_level = default_level

    log_format = config.get('format', DEFAULT_LOG_FORMAT)
    log_date_format = config.get('date_format', DEFAULT_LOG_DATE_FORMAT)

    formatter = StructuredLogFormatter(log_format, datefmt=log_date_format)

    # Configure the root logger so every module using logging.getLogger(__name__) inherits it.
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_log_level)

    if root_logger.hasHandlers():
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_file_path = config.get('file_path', 'policy_assistant.log')
    if log_file_path:
        try:
            log_dir = os.path.dirname(log_file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            max_bytes = int(config.get('max_bytes', 5*1024*1024))  # 5 MB
            backup_count = int(config.get('backup_count', 3))

            file_handler = logging.handlers.RotatingFileHandler(
                log_file_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            print(f"Logging to file: {log_file_path} with level {log_level_str}", file=sys.stdout)
        except OSError as e:
            print(f"Error setting up file logging to {log_file_path}: {e}. File logging will be disabled.", file=sys.stderr)
    else:
        print("File logging is disabled as no 'file_path' was provided in logging config.", file=sys.stdout)

    initial_logger = get_logger("LoggingConfig")
    initial_logger.info("Application logging setup complete. Level: %s", log_level_str)
