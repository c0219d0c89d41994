from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from google.cloud import logging as cloud_logging

DEFAULT_SERVICE_NAME = "quotation-pricing"

# Request-scoped trace id, set by the API middleware.
quote_trace_id: ContextVar[str | None] = ContextVar("quote_trace_id", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, in the shape Cloud Logging ingests from stdout.

    Pricing figures passed through ``extra`` (service type, volume, final
    price, rule id) become top-level fields so quotes can be filtered on them.
    """

    def __init__(self, *, service_name: str = DEFAULT_SERVICE_NAME, project_id: str | None = None) -> None:
        super().__init__()
        self.service_name = service_name
        self.project_id = project_id

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "serviceContext": {"service": self.service_name},
            "logging.googleapis.com/sourceLocation": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        trace_id = quote_trace_id.get()
        if trace_id:
            entry["logging.googleapis.com/trace"] = self.trace_resource(trace_id)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)

    def trace_resource(self, trace_id: str) -> str:
        if self.project_id:
            return f"projects/{self.project_id}/traces/{trace_id}"
        return trace_id


def setup_logging(
    *,
    environment: str = "dev",
    project_id: str | None = None,
    service_name: str = DEFAULT_SERVICE_NAME,
    use_cloud_logging: bool = True,
) -> None:
    """Configure logging for the pricing service.

    Args:
        environment: Environment name (dev, staging, prod)
        project_id: GCP project ID, used for Cloud Logging and trace resources
        service_name: Reported as ``serviceContext.service``
        use_cloud_logging: Whether to attach the Cloud Logging handler outside dev
    """
    log_level = logging.DEBUG if environment == "dev" else logging.INFO

    if use_cloud_logging and project_id and environment != "dev":
        client = cloud_logging.Client(project=project_id)
        client.setup_logging(log_level=log_level)
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter(service_name=service_name, project_id=project_id))
        logging.basicConfig(level=log_level, handlers=[handler])

    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def set_trace_id(trace_id: str | None) -> None:
    quote_trace_id.set(trace_id)


def get_trace_id() -> str | None:
    return quote_trace_id.get()


__all__ = ["StructuredFormatter", "get_trace_id", "set_trace_id", "setup_logging"]
