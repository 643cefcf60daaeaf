"""Minimal observability: JSON logging with trace and company context."""
import uuid
from typing import Optional

from . import logging as logging_module


def generate_trace_id() -> str:
    """Generate a new trace ID for CLI/worker context."""
    return str(uuid.uuid4())


def start_trace(trace_id: Optional[str] = None, company_id: Optional[int] = None) -> str:
    """Bind a trace ID (generated if missing) and company to the current thread."""
    if not trace_id:
        trace_id = generate_trace_id()
    logging_module.set_trace_id(trace_id)
    logging_module.set_company_id(company_id)
    return trace_id


def init_observability() -> None:
    """Initialize all observability components."""
    logging_module.init_logging()


__all__ = [
    "logging_module",
    "generate_trace_id",
    "start_trace",
    "init_observability",
]
