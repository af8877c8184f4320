import logging
import os
import sys
from pathlib import Path
from collections import deque
from logging.handlers import RotatingFileHandler


class MemoryLogHandler(logging.Handler):
    """In-memory ring buffer for recent log entries. Always works, no file I/O."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self.buffer: deque = deque(maxlen=capacity)

    def emit(self, record):
        self.buffer.append(self.format(record))

    def get_logs(self, n: int = 50) -> list[str]:
        return list(self.buffer)[-n:]


# Global memory handler instance (read by /api/admin/logs)
memory_handler = MemoryLogHandler(capacity=1000)


def setup_logger(
    name: str = "ResumeRefresh",
    log_file: str = "logs/activity.log",
    level: str = "INFO",
    max_size_mb: int = 10,
    backup_count: int = 5,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    mem_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    memory_handler.setFormatter(mem_formatter)
    logger.addHandler(memory_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(console_handler)

    _attach_file_handler(logger, log_file, max_size_mb, backup_count)
    return logger


def _attach_file_handler(logger: logging.Logger, log_file: str, max_size_mb: int, backup_count: int):
    # File handler may fail on permission issues with bind mounts
    try:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_size_mb * 1024 * 1024, backupCount=backup_count
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)
        return file_handler
    except (PermissionError, OSError) as e:
        logger.warning(f"Could not create log file {log_file}: {e}. Using memory + stdout only.")
        return None


def configure_from_settings(settings) -> logging.Logger:
    """Apply the configured level and log file once settings are loaded."""
    config = settings.logging
    root = logging.getLogger("ResumeRefresh")
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    target = os.path.abspath(config.file)
    max_bytes = config.max_size * 1024 * 1024
    for handler in list(root.handlers):
        if not isinstance(handler, RotatingFileHandler):
            continue
        if handler.baseFilename == target and handler.maxBytes == max_bytes \
                and handler.backupCount == config.backup_count:
            return root
        root.removeHandler(handler)
        handler.close()

    _attach_file_handler(root, config.file, config.max_size, config.backup_count)
    return root


def get_logger(name: str) -> logging.Logger:
    """Child logger under the application root so module names show up in file logs."""
    return logging.getLogger(f"ResumeRefresh.{name}")


# Global instance
logger = setup_logger()
