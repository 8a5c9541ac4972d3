# delta4qa/logging_utils.py
"""
Logging for the Delta4 QA tools, driven by Delta4Settings
(LOG_LEVEL, LOG_FILE, LOG_JSON).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from delta4qa.config import Delta4Settings, settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# pdfminer logs every parsed object at DEBUG
QUIET_LOGGERS = ("pdfminer", "pdfplumber", "PIL", "matplotlib")


class ReportJsonFormatter(logging.Formatter):
    """One JSON object per record; `source_file` is included when passed via `extra`."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        source = getattr(record, "source_file", None)
        if source is not None:
            data["source_file"] = str(source)
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data)


def _handlers(log_file: Optional[Path]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    return handlers


def setup_logging(config: Delta4Settings = settings) -> None:
    """
    Configure the root logger from the settings: console output, plus a file
    when LOG_FILE is set, as text or JSON lines. Third-party PDF/plotting
    loggers are held at WARNING unless LOG_LEVEL is stricter.
    """
    level = getattr(logging, config.LOG_LEVEL.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown LOG_LEVEL '{config.LOG_LEVEL}'")

    formatter = ReportJsonFormatter() if config.LOG_JSON else logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers = _handlers(config.LOG_FILE)
    for h in handlers:
        h.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
