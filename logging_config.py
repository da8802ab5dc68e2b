import logging
import os
from logging.handlers import RotatingFileHandler

FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logger(module_name: str, log_dir: str | None = None, max_bytes: int = 1_000_000, backup_count: int = 3) -> logging.Logger:
    """
    Configure a rotating logger for one component of the assistant.

    Args:
        module_name (str): Logger name, also used as the log file stem
        log_dir (str): Directory for log files (default: $LOG_DIR or "logs")
        max_bytes (int): Max file size before rotation (default: 1MB)
        backup_count (int): Number of backup logs to keep (default: 3)

    Returns:
        logging.Logger: Configured logger
    """
    log_dir = log_dir or os.getenv("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(module_name)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(FORMAT, datefmt=DATE_FORMAT)

    # Rotating file handler keeps the full debug trail for operators
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, f"{module_name}.log"),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
        mode="a",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Console handler follows LOG_LEVEL
    console_handler = logging.StreamHandler()
    console_handler.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
