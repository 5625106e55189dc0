"""Logging setup for the book agent server."""

import logging
import logging.config
from typing import Optional

from src.book_agent import config


def configure_logging(level: Optional[str] = None) -> None:
    """Configure console logging for the application and uvicorn."""
    level = (level or config.LOG_LEVEL).upper()

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
        },
        'handlers': {
            'console': {
                'level': level,
                'formatter': 'standard',
                'class': 'logging.StreamHandler',
            },
        },
        'loggers': {
            '': {  # root logger
                'handlers': ['console'],
                'level': 'INFO',
                'propagate': True
            },
            'src.book_agent': {
                'handlers': ['console'],
                'level': level,
                'propagate': False
            },
            'uvicorn.access': {
                'handlers': ['console'],
                'level': 'INFO',
                'propagate': False
            },
        }
    })
