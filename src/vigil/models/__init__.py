"""Vigil data models."""

from vigil.models.enums import ApplicationStatus, EventKind, Severity
from vigil.models.records import Alert, Application, ErrorEvent, Metric

__all__ = [
    "ApplicationStatus",
    "Severity",
    "EventKind",
    "Application",
    "Metric",
    "ErrorEvent",
    "Alert",
]
