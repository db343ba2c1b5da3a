"""Validate -> persist -> publish entry points shared by every producer."""

from __future__ import annotations

import logging
from typing import Any

from vigil.core.broadcaster import Broadcaster
from vigil.core.schemas import (
    AlertIn,
    ApplicationIn,
    ApplicationUpdate,
    ErrorIn,
    MetricIn,
    RegistrationIn,
    parse_payload,
)
from vigil.core.store import VigilStore
from vigil.errors import (
    ApplicationNotFoundError,
    PayloadValidationError,
    RecordNotFoundError,
    StoreError,
)
from vigil.models import (
    Alert,
    Application,
    ApplicationStatus,
    ErrorEvent,
    EventKind,
    Metric,
)

logger = logging.getLogger("vigil.pipeline")


class IngestionPipeline:
    """Single-record, bulk and registration ingestion over one store and broadcaster.

    The write and the publish are separate steps: a record is committed
    before it is published, and ``Broadcaster.publish`` never raises, so a
    push failure cannot undo or fail an accepted write.
    """

    def __init__(self, store: VigilStore, broadcaster: Broadcaster) -> None:
        self.store = store
        self.broadcaster = broadcaster

    # --- Applications ---

    async def create_application(self, payload: Any) -> Application:
        data = parse_payload(ApplicationIn, payload)
        app = self.store.create_application(**data.model_dump())
        logger.info("Created application %s (%s)", app.name, app.id)
        return app

    async def register_application(self, payload: Any) -> Application:
        """Create an application from a minimal descriptor (healthy / 100 / 0)."""
        data = parse_payload(RegistrationIn, payload)
        app = self.store.create_application(
            name=data.name,
            status=ApplicationStatus.HEALTHY.value,
            uptime=100.0,
            avg_response_time=0.0,
        )
        logger.info(
            "Registered application %s (%s) version=%s environment=%s",
            app.name,
            app.id,
            data.version,
            data.environment,
        )
        return app

    async def update_application(self, application_id: str, payload: Any) -> Application:
        data = parse_payload(ApplicationUpdate, payload)
        app = self.store.update_application(
            application_id, **data.model_dump(exclude_none=True)
        )
        if app is None:
            raise RecordNotFoundError("application", application_id)
        return app

    def require_application(self, application_id: str) -> Application:
        app = self.store.get_application(application_id)
        if app is None:
            raise ApplicationNotFoundError(application_id)
        return app

    # --- Single-record ingestion ---

    async def ingest_metric(self, payload: Any) -> Metric:
        data = parse_payload(MetricIn, payload)
        self.require_application(data.application_id)
        metric = self.store.create_metric(**data.model_dump())
        await self.broadcaster.publish(EventKind.METRIC, metric)
        return metric

    async def ingest_error(self, payload: Any) -> ErrorEvent:
        data = parse_payload(ErrorIn, payload)
        self.require_application(data.application_id)
        error = self.store.create_error(**data.model_dump())
        await self.broadcaster.publish(EventKind.ERROR, error)
        return error

    async def create_alert(self, payload: Any) -> Alert:
        data = parse_payload(AlertIn, payload)
        self.require_application(data.application_id)
        alert = self.store.create_alert(**data.model_dump())
        await self.broadcaster.publish(EventKind.ALERT, alert)
        return alert

    async def acknowledge_alert(self, alert_id: str) -> Alert:
        alert = self.store.acknowledge_alert(alert_id)
        if alert is None:
            raise RecordNotFoundError("alert", alert_id)
        await self.broadcaster.publish(EventKind.ALERT, alert)
        return alert

    # --- Bulk ingestion ---

    async def ingest_metrics_bulk(self, application_id: Any, records: Any) -> int:
        return await self._ingest_bulk("metrics", application_id, records, self.ingest_metric)

    async def ingest_errors_bulk(self, application_id: Any, records: Any) -> int:
        return await self._ingest_bulk("errors", application_id, records, self.ingest_error)

    async def _ingest_bulk(self, kind: str, application_id: Any, records: Any, ingest_one) -> int:
        """Best-effort batch: bad records are logged and skipped. Returns the written count."""
        if not isinstance(application_id, str) or not application_id or not isinstance(records, list):
            raise PayloadValidationError(f"applicationId and {kind} array are required")
        self.require_application(application_id)

        written = 0
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                logger.warning("Skipping %s[%d]: expected an object", kind, index)
                continue
            try:
                await ingest_one({**record, "applicationId": application_id})
            except (PayloadValidationError, StoreError) as exc:
                logger.warning("Skipping %s[%d]: %s %s", kind, index, exc.message, exc.details or "")
                continue
            written += 1

        logger.info("Bulk ingested %d/%d %s for %s", written, len(records), kind, application_id)
        return written
