"""
Logging configuration for SlideReel.
"""
import logging
import logging.config
from typing import Any, Dict, Optional

from slidereel.config import settings


def setup_logging(job_id: Optional[str] = None, log_level: Optional[str] = None) -> None:
    """
    Configure console logging and, when a job id is given, a log file inside the job directory.

    Args:
        job_id: Optional job identifier. Logs are also written to JOBS_OUTPUT_PATH/<job_id>/<job_id>.log
        log_level: Logging level name, defaults to settings.LOG_LEVEL
    """
    if log_level is None:
        log_level = settings.LOG_LEVEL
    log_level = log_level.upper()

    logging_dict: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": (
                    "%(asctime)s - %(name)s - %(levelname)s - "
                    "%(module)s - %(funcName)s - %(lineno)d - %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "level": log_level,
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {
            "slidereel": {"level": log_level, "handlers": ["console"], "propagate": False},
            "uvicorn": {"level": log_level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }

    if job_id:
        job_dir = settings.JOBS_OUTPUT_PATH / job_id
        job_dir.mkdir(parents=True, exist_ok=True)
        logging_dict["handlers"]["file"] = {
            "level": "DEBUG",
            "class": "logging.FileHandler",
            "filename": str(job_dir / f"{job_id}.log"),
            "encoding": "utf-8",
            "formatter": "detailed",
        }
        for logger_config in logging_dict["loggers"].values():
            logger_config["handlers"].append("file")
        logging_dict["root"]["handlers"].append("file")

    logging.config.dictConfig(logging_dict)
