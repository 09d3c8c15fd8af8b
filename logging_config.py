"""
Logging configuration for the API process
"""
import logging.config
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ACCESS_FORMAT = "%(asctime)s - %(levelname)s - %(client_addr)s - \"%(request_line)s\" %(status_code)s"


def build_logging_config(level: str = None) -> dict:
    """dictConfig for uvicorn's loggers plus the creator_insights tree at LOG_LEVEL"""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"()": "uvicorn.logging.DefaultFormatter", "fmt": LOG_FORMAT, "use_colors": None},
            "access": {"()": "uvicorn.logging.AccessFormatter", "fmt": ACCESS_FORMAT},
        },
        "handlers": {
            "default": {"formatter": "default", "class": "logging.StreamHandler", "stream": "ext://sys.stderr"},
            "access": {"formatter": "access", "class": "logging.StreamHandler", "stream": "ext://sys.stdout"},
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO"},
            "uvicorn.error": {"level": "INFO"},
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
            # Every module logs under creator_insights.<module>
            "creator_insights": {"handlers": ["default"], "level": level, "propagate": False},
        },
    }


def configure_logging(level: str = None):
    logging.config.dictConfig(build_logging_config(level))
