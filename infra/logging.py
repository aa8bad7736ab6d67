# infra/logging.py
"""
Structured request logging for the edge endpoints.
"""
import logging
import json
import uuid

_log = logging.getLogger("authentiqc")


def configure_logging(level: str = "INFO"):
    """
    Install the root handler once at process start.
    Messages are emitted as-is so JSON events stay machine-readable.
    """
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(message)s")


def new_request_id() -> str:
    return str(uuid.uuid4())


def log_event(event: str, **kwargs):
    """
    Log a structured event with request_id and custom fields.
    Automatically generates request_id if not provided.
    """
    rec = {"event": event, "request_id": kwargs.pop("request_id", None) or new_request_id(), **kwargs}
    _log.info(json.dumps(rec, default=str))


def log_error(error: str, **kwargs):
    """
    Log an error event.
    """
    rec = {"event": "error", "error": error, "request_id": kwargs.pop("request_id", None) or new_request_id(), **kwargs}
    _log.error(json.dumps(rec, default=str))
