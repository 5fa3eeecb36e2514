"""
Logging setup for the portfolio engine.

- LOG_LEVEL sets the root level (default INFO).
- LOG_LEVELS overrides single loggers: "services.actions=DEBUG,sqlalchemy.engine=INFO".
- LOG_JSON=1 switches to one JSON object per line.
- Messages carry ids, counts and lengths only. Wallet addresses, API keys
  and raw command text stay out of the logs.
"""
import json
import logging
import os
import sys
from typing import Any, Dict

# attributes every LogRecord has; anything else came in through `extra=`
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}


def _json_serial(obj: Any):
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    return str(obj)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload and value is not None:
                payload[key] = value
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_serial)


def parse_level_overrides(raw: str) -> Dict[str, int]:
    """"a=DEBUG,b=warning" -> {"a": 10, "b": 30}. Unknown levels are skipped."""
    out: Dict[str, int] = {}
    for part in (raw or "").split(","):
        name, sep, level_name = part.partition("=")
        if not sep or not name.strip():
            continue
        level = logging.getLevelName(level_name.strip().upper())
        if isinstance(level, int):
            out[name.strip()] = level
    return out


def configure_logging() -> None:
    level = logging.getLevelName((os.getenv("LOG_LEVEL") or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    use_json = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

    root = logging.getLogger()
    root.setLevel(level)
    # reloads would otherwise stack handlers
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(handler)

    levels = dict(_NOISY_LOGGERS)
    levels.update(parse_level_overrides(os.getenv("LOG_LEVELS", "")))
    for name, lvl in levels.items():
        logging.getLogger(name).setLevel(lvl)
