import logging
import sys
import os
from logging.handlers import RotatingFileHandler

# Creates logs directory if it doesn't exist
LOGS_DIR = os.getenv("LOGS_DIR", os.path.join(os.path.dirname(__file__), "logs"))
os.makedirs(LOGS_DIR, exist_ok=True)

class CustomFormatter(logging.Formatter):
    """Custom formatter with colors for console output"""

    grey = "\x1b[38;20m"
    blue = "\x1b[34;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s (%(filename)s:%(lineno)d)"

    FORMATS = {
        logging.DEBUG: grey + format_str + reset,
        logging.INFO: blue + format_str + reset,
        logging.WARNING: yellow + format_str + reset,
        logging.ERROR: red + format_str + reset,
        logging.CRITICAL: bold_red + format_str + reset
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno)
        formatter = logging.Formatter(log_fmt, datefmt="%Y-%m-%d %H:%M:%S")
        return formatter.format(record)

def setup_logger(name: str = "growth_journal", level: int = logging.INFO) -> logging.Logger:
    """Configures the application logger.

    Module loggers are created with logging.getLogger(__name__) and reach these
    handlers through the root logger, so the handlers are attached there.
    """

    logger = logging.getLogger(name)
    root = logging.getLogger()
    root.setLevel(level)

    # Prevent duplicate handlers if function is called multiple times
    if getattr(root, "_growth_journal_configured", False):
        return logger

    # Console Handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(CustomFormatter())
    root.addHandler(console_handler)

    # File Handler (Rotating)
    # 5MB max size per file, keep last 5 backups
    log_file = os.path.join(LOGS_DIR, "app.log")
    file_handler = RotatingFileHandler(log_file, maxBytes=5*1024*1024, backupCount=5, encoding='utf-8')
    file_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    file_handler.setFormatter(file_formatter)
    root.addHandler(file_handler)

    root._growth_journal_configured = True
    return logger
