"""Structured logging helpers shared across pipeline stages."""

from __future__ import annotations

import gzip
import json
import logging
import re
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

from .settings import LOG_DIR

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password", "jwt"}
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9+/=_.-]{32,}$")
_MASK = "***masked***"


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with common secret fields masked."""

    def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
        if isinstance(value, dict):
            return {
                sub_key: _mask_value(sub_value, str(sub_key).lower())
                for sub_key, sub_value in value.items()
            }
        if isinstance(value, (list, tuple)):
            return type(value)(_mask_value(item, key_hint) for item in value)
        if isinstance(value, str):
            if key_hint in _SENSITIVE_KEYS:
                return _MASK
            lowered = value.lower()
            if "bearer " in lowered or "basic " in lowered:
                return _MASK
            # Hex strings are addresses and hashes, which we want in the logs.
            if _TOKEN_PATTERN.fullmatch(value) and not value.startswith("0x"):
                return _MASK
        return value

    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in _SENSITIVE_KEYS:
            masked[key] = _MASK
        else:
            masked[key] = _mask_value(value, lower)
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries for pipeline runs."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with pipeline-specific fields."""

        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stage": getattr(record, "stage", None),
            "registry": getattr(record, "registry", None),
            "page": getattr(record, "page", None),
            "record_key": getattr(record, "record_key", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def _compress_old_log(path: Path) -> None:
    """Compress ``path`` into a ``.gz`` file and remove the original."""

    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        target.write(source.read())
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Compress stale JSONL logs and delete expired archives."""

    actions: List[str] = []
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("*.jsonl"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            _compress_old_log(file)
            actions.append(f"Compressed {file.name}")
    for file in log_dir.glob("*.jsonl.gz"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            file.unlink(missing_ok=True)
            actions.append(f"Deleted expired archive {file.name}")
    return actions


def setup_logging(
    *,
    level: str = "INFO",
    retention_days: int = 14,
    max_log_size_mb: int = 50,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``AgentsToKG`` logger with a console handler and a JSONL sidecar.

    Calling this repeatedly replaces the handlers installed by earlier calls
    instead of stacking new ones.
    """

    resolved_dir = log_dir or LOG_DIR
    resolved_dir.mkdir(parents=True, exist_ok=True)
    _cleanup_logs(resolved_dir, retention_days)

    logger = logging.getLogger("AgentsToKG")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_agentkg_managed", False):
            logger.removeHandler(handler)
            stream = getattr(handler, "stream", None)
            if stream in (sys.stdout, sys.stderr):
                continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._agentkg_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    file_handler = RotatingFileHandler(
        resolved_dir / f"agentkg-{today}.jsonl",
        maxBytes=int(max_log_size_mb * 1024 * 1024),
        backupCount=5,
    )
    file_handler.setFormatter(JSONFormatter())
    file_handler._agentkg_managed = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
