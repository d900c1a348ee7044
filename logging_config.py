from __future__ import annotations

import logging
import logging.config
from typing import Any, Dict, Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Union[str, int] = "INFO", log_file: Optional[str] = None) -> None:
    """
    Route every module logger to the console (and optionally a rotating file).

    Library modules only ever call `logging.getLogger(__name__)`; nothing is
    configured until the host application calls this. Safe to call twice.
    """
    if isinstance(level, int):
        level = logging.getLevelName(level)
    level = str(level).upper()

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"detailed": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
    }
    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "detailed",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }
        config["root"]["handlers"].append("file")

    logging.config.dictConfig(config)
