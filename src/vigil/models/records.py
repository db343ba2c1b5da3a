"""Frozen dataclass models for persisted monitoring records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Application:
    """A monitored service. Summary fields are managed independently of metrics."""

    id: str
    name: str
    status: str
    uptime: float = 0.0
    avg_response_time: float = 0.0
    created_at: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class Metric:
    """One performance sample for an application."""

    id: str
    application_id: str
    timestamp: datetime
    response_time: float
    throughput: float
    error_rate: float
    success_rate: float
    cpu_usage: float | None = None
    memory_usage: float | None = None


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """One error occurrence reported by an application."""

    id: str
    application_id: str
    timestamp: datetime
    error_type: str
    message: str
    stack_trace: str | None = None
    endpoint: str | None = None
    count: int = 1


@dataclass(frozen=True, slots=True)
class Alert:
    """A threshold breach with an acknowledge lifecycle (false -> true, once)."""

    id: str
    application_id: str
    timestamp: datetime
    alert_type: str
    severity: str
    message: str
    threshold: float
    current_value: float
    acknowledged: bool = False
    acknowledged_at: datetime | None = None
