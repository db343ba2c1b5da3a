"""HTTP read/write endpoints and the /ws push channel."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, WebSocket

from vigil.core.broadcaster import Broadcaster
from vigil.core.pipeline import IngestionPipeline
from vigil.core.store import VigilStore
from vigil.models.wire import to_wire, to_wire_list

logger = logging.getLogger("vigil.api")

router = APIRouter(prefix="/api")
ws_router = APIRouter()


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def get_store(request: Request) -> VigilStore:
    return request.app.state.pipeline.store


# --- Applications ---


@router.get("/applications")
async def list_applications(store: VigilStore = Depends(get_store)):
    return to_wire_list(store.list_applications())


@router.get("/applications/{application_id}")
async def get_application(application_id: str, pipeline: IngestionPipeline = Depends(get_pipeline)):
    return to_wire(pipeline.require_application(application_id))


@router.post("/applications", status_code=201)
async def create_application(
    payload: Any = Body(...), pipeline: IngestionPipeline = Depends(get_pipeline)
):
    return to_wire(await pipeline.create_application(payload))


@router.patch("/applications/{application_id}")
async def update_application(
    application_id: str,
    payload: Any = Body(...),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    return to_wire(await pipeline.update_application(application_id, payload))


# --- External ingestion ---


@router.post("/ingest/register", status_code=201)
async def register_application(
    payload: Any = Body(...), pipeline: IngestionPipeline = Depends(get_pipeline)
):
    app = await pipeline.register_application(payload)
    return {
        "applicationId": app.id,
        "message": "Application registered successfully",
        "application": to_wire(app),
    }


@router.post("/ingest/metrics", status_code=201)
async def ingest_metric(payload: Any = Body(...), pipeline: IngestionPipeline = Depends(get_pipeline)):
    return to_wire(await pipeline.ingest_metric(payload))


@router.post("/ingest/metrics/bulk", status_code=201)
async def ingest_metrics_bulk(
    payload: dict[str, Any] = Body(...), pipeline: IngestionPipeline = Depends(get_pipeline)
):
    count = await pipeline.ingest_metrics_bulk(payload.get("applicationId"), payload.get("metrics"))
    return {"message": f"Successfully ingested {count} metrics", "count": count}


@router.post("/ingest/errors/bulk", status_code=201)
async def ingest_errors_bulk(
    payload: dict[str, Any] = Body(...), pipeline: IngestionPipeline = Depends(get_pipeline)
):
    count = await pipeline.ingest_errors_bulk(payload.get("applicationId"), payload.get("errors"))
    return {"message": f"Successfully ingested {count} errors", "count": count}


# --- Metrics ---


@router.get("/metrics")
async def list_metrics(
    application_id: Optional[str] = Query(None, alias="applicationId"),
    limit: Optional[int] = Query(None, ge=1),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    store: VigilStore = Depends(get_store),
):
    if start is not None and end is not None:
        metrics = store.list_metrics_by_time_range(start, end, application_id)
    else:
        metrics = store.list_metrics(application_id, limit or 100)
    return to_wire_list(metrics)


@router.post("/metrics", status_code=201)
async def create_metric(payload: Any = Body(...), pipeline: IngestionPipeline = Depends(get_pipeline)):
    return to_wire(await pipeline.ingest_metric(payload))


# --- Errors ---


@router.get("/errors")
async def list_errors(
    application_id: Optional[str] = Query(None, alias="applicationId"),
    limit: Optional[int] = Query(None, ge=1),
    store: VigilStore = Depends(get_store),
):
    return to_wire_list(store.list_errors(application_id, limit or 50))


@router.post("/errors", status_code=201)
async def create_error(payload: Any = Body(...), pipeline: IngestionPipeline = Depends(get_pipeline)):
    return to_wire(await pipeline.ingest_error(payload))


# --- Alerts ---


@router.get("/alerts")
async def list_alerts(
    application_id: Optional[str] = Query(None, alias="applicationId"),
    acknowledged: Optional[bool] = Query(None),
    store: VigilStore = Depends(get_store),
):
    return to_wire_list(store.list_alerts(application_id, acknowledged))


@router.post("/alerts", status_code=201)
async def create_alert(payload: Any = Body(...), pipeline: IngestionPipeline = Depends(get_pipeline)):
    return to_wire(await pipeline.create_alert(payload))


@router.patch("/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: str, pipeline: IngestionPipeline = Depends(get_pipeline)):
    return to_wire(await pipeline.acknowledge_alert(alert_id))


# --- Push channel ---


@ws_router.websocket("/ws")
async def push_channel(websocket: WebSocket):
    """Server -> client change events. Inbound text and binary frames are read and ignored."""
    broadcaster: Broadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    await broadcaster.connect(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        await broadcaster.disconnect(websocket)
