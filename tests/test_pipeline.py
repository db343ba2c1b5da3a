"""Tests for the validate -> persist -> publish pipeline."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from conftest import FakeChannel, alert_payload, error_payload, metric_payload

from vigil.errors import (
    ApplicationNotFoundError,
    PayloadValidationError,
    RecordNotFoundError,
    StoreError,
)


@pytest_asyncio.fixture
async def channel(broadcaster):
    ch = FakeChannel()
    await broadcaster.connect(ch)
    return ch


@pytest.mark.asyncio
class TestSingleRecord:
    async def test_metric_written_and_published(self, pipeline, store, app_record, channel):
        received = datetime.now(timezone.utc)
        metric = await pipeline.ingest_metric(metric_payload(app_record.id))
        assert metric.timestamp >= received
        assert store.list_metrics(app_record.id)[0].id == metric.id
        assert channel.kinds == ["metric"]
        assert channel.events[0]["data"]["id"] == metric.id

    async def test_snake_case_accepted(self, pipeline, app_record):
        metric = await pipeline.ingest_metric(
            {
                "application_id": app_record.id,
                "response_time": 10,
                "throughput": 5,
                "error_rate": 0,
                "success_rate": 100,
            }
        )
        assert metric.response_time == 10

    async def test_invalid_metric_nothing_written(self, pipeline, store, app_record, channel):
        with pytest.raises(PayloadValidationError):
            await pipeline.ingest_metric(metric_payload(app_record.id, errorRate=150))
        assert store.count("metrics") == 0
        assert channel.events == []

    async def test_unknown_application(self, pipeline, store, channel):
        with pytest.raises(ApplicationNotFoundError):
            await pipeline.ingest_metric(metric_payload("missing"))
        assert store.count("metrics") == 0
        assert channel.events == []

    async def test_producer_cannot_set_id_or_timestamp(self, pipeline, app_record):
        metric = await pipeline.ingest_metric(
            metric_payload(app_record.id, id="forged", timestamp="2000-01-01T00:00:00Z")
        )
        assert metric.id != "forged"
        assert metric.timestamp.year > 2000

    async def test_error_default_count(self, pipeline, app_record, channel):
        error = await pipeline.ingest_error(error_payload(app_record.id))
        assert error.count == 1
        assert channel.kinds == ["error"]

    async def test_error_count_must_be_positive(self, pipeline, app_record):
        with pytest.raises(PayloadValidationError):
            await pipeline.ingest_error(error_payload(app_record.id, count=0))

    async def test_alert_defaults_unacknowledged(self, pipeline, app_record, channel):
        alert = await pipeline.create_alert(alert_payload(app_record.id))
        assert alert.acknowledged is False
        assert channel.kinds == ["alert"]

    async def test_alert_bad_severity(self, pipeline, app_record):
        with pytest.raises(PayloadValidationError):
            await pipeline.create_alert(alert_payload(app_record.id, severity="info"))

    async def test_publish_failure_does_not_fail_write(self, pipeline, broadcaster, store, app_record):
        await broadcaster.connect(FakeChannel(fail=True))
        metric = await pipeline.ingest_metric(metric_payload(app_record.id))
        assert store.list_metrics()[0].id == metric.id
        assert broadcaster.channel_count == 0


@pytest.mark.asyncio
class TestAcknowledge:
    async def test_acknowledge_publishes(self, pipeline, app_record, channel):
        alert = await pipeline.create_alert(alert_payload(app_record.id))
        acked = await pipeline.acknowledge_alert(alert.id)
        assert acked.acknowledged is True
        assert channel.kinds == ["alert", "alert"]
        assert channel.events[1]["data"]["acknowledged"] is True

    async def test_acknowledge_twice_keeps_first_time(self, pipeline, app_record):
        alert = await pipeline.create_alert(alert_payload(app_record.id))
        first = await pipeline.acknowledge_alert(alert.id)
        second = await pipeline.acknowledge_alert(alert.id)
        assert second.acknowledged_at == first.acknowledged_at

    async def test_acknowledge_unknown(self, pipeline, channel):
        with pytest.raises(RecordNotFoundError):
            await pipeline.acknowledge_alert("missing")
        assert channel.events == []


@pytest.mark.asyncio
class TestBulk:
    async def test_partial_success_count(self, pipeline, store, app_record, channel):
        records = [
            {"responseTime": 100, "throughput": 1, "errorRate": 0, "successRate": 100},
            {"responseTime": -5, "throughput": 1, "errorRate": 0, "successRate": 100},
            {"responseTime": 120, "throughput": 1, "errorRate": 0, "successRate": 100},
            {"throughput": 1},
            "not-an-object",
        ]
        count = await pipeline.ingest_metrics_bulk(app_record.id, records)
        assert count == 2
        assert store.count("metrics") == 2
        assert channel.kinds == ["metric", "metric"]

    async def test_batch_application_id_wins(self, pipeline, store, app_record):
        other = store.create_application(name="other", status="healthy")
        records = [{"applicationId": other.id, "responseTime": 1, "throughput": 1,
                    "errorRate": 0, "successRate": 100}]
        assert await pipeline.ingest_metrics_bulk(app_record.id, records) == 1
        assert store.list_metrics(other.id) == []

    async def test_missing_application_id(self, pipeline, store):
        with pytest.raises(PayloadValidationError):
            await pipeline.ingest_metrics_bulk(None, [])
        assert store.count("metrics") == 0

    async def test_records_not_a_list(self, pipeline, app_record):
        with pytest.raises(PayloadValidationError):
            await pipeline.ingest_errors_bulk(app_record.id, {"errorType": "x"})

    async def test_unknown_application_rejects_batch(self, pipeline, store):
        with pytest.raises(ApplicationNotFoundError):
            await pipeline.ingest_errors_bulk("missing", [error_payload("missing")])
        assert store.count("errors") == 0

    async def test_store_failure_skips_record(self, pipeline, store, app_record, monkeypatch):
        original = store.create_error
        calls = {"n": 0}

        def flaky(**fields):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StoreError("Failed to create error")
            return original(**fields)

        monkeypatch.setattr(store, "create_error", flaky)
        records = [error_payload(app_record.id), error_payload(app_record.id)]
        assert await pipeline.ingest_errors_bulk(app_record.id, records) == 1
        assert store.count("errors") == 1


@pytest.mark.asyncio
class TestApplications:
    async def test_register_defaults(self, pipeline):
        app = await pipeline.register_application(
            {"name": "checkout-service", "version": "1.2.0", "environment": "prod"}
        )
        assert (app.status, app.uptime, app.avg_response_time) == ("healthy", 100.0, 0.0)

    async def test_register_requires_name(self, pipeline):
        with pytest.raises(PayloadValidationError):
            await pipeline.register_application({"description": "no name"})

    async def test_create_requires_status(self, pipeline):
        with pytest.raises(PayloadValidationError):
            await pipeline.create_application({"name": "x"})

    async def test_update(self, pipeline, app_record):
        app = await pipeline.update_application(app_record.id, {"status": "warning", "avgResponseTime": 310})
        assert app.status == "warning"
        assert app.avg_response_time == 310

    async def test_update_unknown(self, pipeline):
        with pytest.raises(RecordNotFoundError):
            await pipeline.update_application("missing", {"status": "warning"})
