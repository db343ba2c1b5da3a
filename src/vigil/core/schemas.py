"""Pydantic models for inbound payloads.

Fields accept the camelCase names producers send as well as the snake_case
attribute names. Unknown keys are ignored. Ids and timestamps are never
accepted from producers. Values are not coerced across types, and
non-finite floats are rejected.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from vigil.errors import PayloadValidationError
from vigil.models.enums import ApplicationStatus, Severity


class _Inbound(BaseModel):
    label: ClassVar[str] = "payload"

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
        strict=True,
        allow_inf_nan=False,
        use_enum_values=True,
    )


class ApplicationIn(_Inbound):
    """Full application fields (POST /api/applications)."""

    label: ClassVar[str] = "application"

    name: str = Field(min_length=1)
    status: ApplicationStatus = Field(strict=False)
    uptime: float = Field(default=0.0, ge=0, le=100)
    avg_response_time: float = Field(default=0.0, ge=0)


class ApplicationUpdate(_Inbound):
    """Partial update of the independently managed summary fields."""

    label: ClassVar[str] = "application"

    name: Optional[str] = Field(default=None, min_length=1)
    status: Optional[ApplicationStatus] = Field(default=None, strict=False)
    uptime: Optional[float] = Field(default=None, ge=0, le=100)
    avg_response_time: Optional[float] = Field(default=None, ge=0)


class RegistrationIn(_Inbound):
    """Minimal descriptor used by external producers to self-register."""

    label: ClassVar[str] = "registration"

    name: str = Field(min_length=1)
    description: Optional[str] = None
    version: Optional[str] = None
    environment: Optional[str] = None


class MetricIn(_Inbound):
    label: ClassVar[str] = "metric"

    application_id: str = Field(min_length=1)
    response_time: float = Field(ge=0)
    throughput: float = Field(ge=0)
    error_rate: float = Field(ge=0, le=100)
    success_rate: float = Field(ge=0, le=100)
    cpu_usage: Optional[float] = Field(default=None, ge=0, le=100)
    memory_usage: Optional[float] = Field(default=None, ge=0, le=100)


class ErrorIn(_Inbound):
    label: ClassVar[str] = "error"

    application_id: str = Field(min_length=1)
    error_type: str = Field(min_length=1)
    message: str = Field(min_length=1)
    stack_trace: Optional[str] = None
    endpoint: Optional[str] = None
    count: int = Field(default=1, ge=1)


class AlertIn(_Inbound):
    label: ClassVar[str] = "alert"

    application_id: str = Field(min_length=1)
    alert_type: str = Field(min_length=1)
    severity: Severity = Field(strict=False)
    message: str = Field(min_length=1)
    threshold: float
    current_value: float
    acknowledged: bool = False


def parse_payload(model: type[_Inbound], payload: Any) -> Any:
    """Validate ``payload`` against ``model`` or raise PayloadValidationError."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(by_alias=True)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise PayloadValidationError(
            f"Invalid {model.label} data",
            details=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc
