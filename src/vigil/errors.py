"""Error taxonomy for the ingestion pipeline.

Each error carries the HTTP status the API layer maps it to. Broadcast
failures have no exception type: they are logged and the channel is dropped.
"""

from __future__ import annotations

from typing import Any


class VigilError(Exception):
    """Base class for all Vigil errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class PayloadValidationError(VigilError):
    """Payload failed shape/type checks. Nothing was persisted."""

    status_code = 400


class ApplicationNotFoundError(VigilError):
    """The referenced applicationId does not resolve."""

    status_code = 404

    def __init__(self, application_id: str) -> None:
        super().__init__("Application not found", {"applicationId": application_id})
        self.application_id = application_id


class RecordNotFoundError(VigilError):
    """Lookup or mutation by an unknown record id."""

    status_code = 404

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind.capitalize()} not found", {"id": record_id})
        self.kind = kind
        self.record_id = record_id


class StoreError(VigilError):
    """Underlying persistence failure. Not retried by this layer."""

    status_code = 500
