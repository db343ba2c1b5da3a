"""Enumerations for Vigil records."""

from enum import Enum


class ApplicationStatus(str, Enum):
    """Summary health of a monitored application."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class Severity(str, Enum):
    """Alert severity."""

    WARNING = "warning"
    CRITICAL = "critical"


class EventKind(str, Enum):
    """Change-event tag carried on the push channel."""

    METRIC = "metric"
    ERROR = "error"
    ALERT = "alert"
