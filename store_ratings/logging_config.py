"""Logging setup for the API process and scripts."""

from __future__ import annotations

import logging
import sys
from typing import Any

from pythonjsonlogger import jsonlogger


class JSONFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with an uppercase `level` field."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if "level" in log_record:
            log_record["level"] = str(log_record["level"]).upper()
        else:
            log_record["level"] = record.levelname


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure the root logger to write to stdout (JSON lines by default)."""
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        formatter: logging.Formatter = JSONFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    # Remove existing handlers to avoid duplicate logs when reloading
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    root_logger.addHandler(handler)

    # Request logging middleware replaces uvicorn's access log.
    logging.getLogger("uvicorn.access").disabled = True
