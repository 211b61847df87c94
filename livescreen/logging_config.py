"""
Logging configuration for the preview server.

Preview clients poll health probes, reconnect their event streams, and
revalidate manifests and modules with If-None-Match. Those access lines
are dropped so the log shows edits, builds and swaps.
"""

import logging
import logging.config
import re
from typing import Any, Dict

QUIET_PATHS = (
    re.compile(r"^/healthz?$"),
    re.compile(r"^/sessions/[^/]+/events$"),
)
# Revalidation answered from cache
QUIET_STATUS = {304}
_REQUEST_LINE = re.compile(r'"(\w+) (\S+) HTTP/[\d.]+" (\d{3})')


class AccessNoiseFilter(logging.Filter):
    """Suppress uvicorn access lines for probes, stream reconnects and 304s."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name != "uvicorn.access":
            return True
        # uvicorn passes (client, method, path, http_version, status)
        if isinstance(record.args, tuple) and len(record.args) == 5:
            _, method, path, _, status = record.args
        else:
            match = _REQUEST_LINE.search(record.getMessage())
            if match is None:
                return True
            method, path, status = match.group(1), match.group(2), int(match.group(3))
        path = str(path).split("?", 1)[0]
        if method == "GET" and any(p.match(path) for p in QUIET_PATHS):
            return False
        return status not in QUIET_STATUS


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """dictConfig for uvicorn and livescreen loggers at the given level."""
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "access_noise_filter": {
                "()": AccessNoiseFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "access": {
                "format": "%(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout"
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
                "filters": ["access_noise_filter"]
            }
        },
        "loggers": {
            "uvicorn": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False
            },
            "uvicorn.error": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False
            },
            "uvicorn.access": {
                "handlers": ["access"],
                "level": "INFO",
                "propagate": False
            },
            "livescreen": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            },
            # watchfiles logs every raw batch at INFO
            "watchfiles": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False
            },
            # keep-alive pings and disconnects on every stream
            "sse_starlette": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False
            }
        },
        "root": {
            "level": "INFO",
            "handlers": ["default"]
        }
    }
