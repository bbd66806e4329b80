"""
Logging for the CoachPro Storage API. Everything goes to stderr through one handler on the root logger.
SAS signatures are account-key derived credentials, so the handler scrubs any `sig=` value before output.
"""
import logging
import os
import re
import sys
from datetime import datetime, timezone

LOG_FORMAT = "%(asctime)sZ [%(levelname)s] %(name)s: %(message)s"

_SIG_VALUE = re.compile(r"(\bsig=)[^&\s'\"]+")
REDACTED = "<redacted>"
# Third-party loggers that echo full request URLs at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class UTCTimeFormatter(logging.Formatter):
    """ISO-8601 UTC timestamps with milliseconds."""

    def formatTime(self, record, datefmt=None):
        ct = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return ct.isoformat(timespec="milliseconds").replace("+00:00", "")


class RedactSasFilter(logging.Filter):
    """Replace SAS signature values in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "sig=" in message:
            record.msg = _SIG_VALUE.sub(r"\1" + REDACTED, message)
            record.args = None
        return True


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger. Call once at startup; LOG_LEVEL env var selects the level."""
    level = level or os.getenv("LOG_LEVEL", "INFO")
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not root.handlers:
        h = logging.StreamHandler(sys.stderr)
        h.setFormatter(UTCTimeFormatter(LOG_FORMAT))
        root.addHandler(h)
    for h in root.handlers:
        if not any(isinstance(f, RedactSasFilter) for f in h.filters):
            h.addFilter(RedactSasFilter())
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
