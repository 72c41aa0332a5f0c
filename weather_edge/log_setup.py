"""
Logging.

Records from the `weather_edge` logger tree are written to stderr as one JSON
line each. Before a line is written, credentials are masked:
- `key=` / `apikey=` / `token=` query parameters (AMap, QWeather)
- `Bearer ...` tokens (completion endpoint)
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, List, Pattern, Tuple, Union

PACKAGE_LOGGER = "weather_edge"
MASK = "***"

_SECRET_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"(?i)\b(bearer)\s+[A-Za-z0-9\-._~+/]+=*"), r"\1 " + MASK),
    (re.compile(r"(?i)\b(key|api[_-]?key|token)=[^\s&,;]+"), r"\1=" + MASK),
]


def redact(text: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "time": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact(record.getMessage()),
        }
        if record.exc_info:
            line["exc"] = redact(self.formatException(record.exc_info))
        return json.dumps(line, ensure_ascii=False, default=str)


def configure_logging(level: Union[str, int] = logging.INFO, name: str = PACKAGE_LOGGER) -> logging.Logger:
    """
    Attach the JSON handler to `name` and set its level.
    Calling it again only updates the level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    if not any(isinstance(h.formatter, JsonLineFormatter) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonLineFormatter())
        logger.addHandler(handler)
    return logger
