"""Logging configuration for auction invoice processing."""
import logging
import logging.config
from pathlib import Path
from typing import Dict, Any

# SDK loggers that are chatty at INFO (request lines, retries of their own)
NOISY_LOGGERS = ("google_genai", "httpx", "aiohttp.access")


def get_logging_config(
    logs_folder: Path,
    log_filename: str = "auction_invoice.log",
    level: str = "INFO"
) -> Dict[str, Any]:
    """Get logging configuration dictionary.

    The console shows ``level`` and above on stderr, keeping stdout free for
    JSON output. The file always receives DEBUG from this package.
    """
    logs_folder.mkdir(parents=True, exist_ok=True)
    log_file_path = logs_folder / log_filename

    loggers: Dict[str, Any] = {
        "auction_invoice": {
            "level": "DEBUG",
            "handlers": ["console", "file"],
            "propagate": False
        }
    }
    for name in NOISY_LOGGERS:
        loggers[name] = {"level": "WARNING"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(levelname)s - %(message)s"
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level.upper(),
                "formatter": "standard",
                "stream": "ext://sys.stderr"
            },
            "file": {
                "class": "logging.FileHandler",
                "level": "DEBUG",
                "formatter": "detailed",
                "filename": str(log_file_path),
                "mode": "a",
                "encoding": "utf-8"
            }
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console", "file"]
        },
        "loggers": loggers
    }


def setup_logging(logs_folder: Path, log_filename: str = "auction_invoice.log", level: str = "INFO") -> None:
    """Set up logging with the specified configuration."""
    config = get_logging_config(logs_folder, log_filename, level)

    # Clear any existing handlers to prevent duplicate logs
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    logging.config.dictConfig(config)
