import logging
import logging.config
from pathlib import Path
from typing import Optional, Union

import yaml


def default_logging_config(log_level: str = "INFO") -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": True
            },
            "asyncio": {
                "level": "WARNING",
            },
        }
    }


def setup_logging(log_level: str = "INFO", config_path: Optional[Union[str, Path]] = None) -> None:
    """
    Set up logging configuration.

    A YAML dictConfig file is used when ``config_path`` points to one;
    otherwise a console configuration at ``log_level`` is applied.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        config_path: Optional path to a logging YAML file
    """
    if config_path is not None and Path(config_path).exists():
        try:
            with open(config_path, "rt", encoding="utf-8") as f:
                log_config = yaml.safe_load(f.read())
            if not isinstance(log_config, dict):
                raise ValueError("logging configuration must be a mapping")
            logging.config.dictConfig(log_config)
            logging.getLogger(__name__).info(f"Logging configured from {config_path}")
            return
        except (OSError, ValueError, yaml.YAMLError) as e:
            logging.config.dictConfig(default_logging_config(log_level.upper()))
            logging.getLogger(__name__).error(
                f"Error loading logging configuration from {config_path}: {e}. Using defaults."
            )
            return

    logging.config.dictConfig(default_logging_config(log_level.upper()))
