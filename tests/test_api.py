"""End-to-end tests for the HTTP contracts and the /ws push channel."""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import alert_payload, error_payload, metric_payload
from fastapi.testclient import TestClient

from vigil.api.app import create_app


class TestApplications:
    def test_list_empty(self, client):
        resp = client.get("/api/applications")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_create(self, client):
        resp = client.post(
            "/api/applications",
            json={"name": "Web Portal", "status": "healthy", "uptime": 99.9, "avgResponseTime": 156},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["name"] == "Web Portal"
        assert body["avgResponseTime"] == 156
        assert body["id"] and body["createdAt"]

    def test_create_invalid(self, client):
        resp = client.post("/api/applications", json={"name": "x", "status": "sleepy"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid application data"

    def test_get_and_update(self, client, registered):
        assert client.get(f"/api/applications/{registered}").json()["name"] == "checkout-service"
        resp = client.patch(f"/api/applications/{registered}", json={"status": "critical"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "critical"

    def test_get_unknown(self, client):
        assert client.get("/api/applications/missing").status_code == 404

    def test_seeded_on_startup(self, tmp_path):
        from vigil.config import GeneratorConfig, VigilConfig

        config = VigilConfig(project_path=tmp_path, generator=GeneratorConfig(enabled=False))
        with TestClient(create_app(config)) as c:
            names = [a["name"] for a in c.get("/api/applications").json()]
        assert names == ["API Gateway", "Payment Service", "User Service", "Web Portal"]


class TestRegister:
    def test_register(self, client):
        resp = client.post(
            "/api/ingest/register",
            json={"name": "checkout-service", "version": "2.1", "environment": "staging"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["applicationId"] == body["application"]["id"]
        assert body["application"]["status"] == "healthy"
        assert body["application"]["uptime"] == 100

    def test_register_missing_name(self, client):
        resp = client.post("/api/ingest/register", json={"version": "1"})
        assert resp.status_code == 400


class TestMetrics:
    def test_register_post_get_scenario(self, client, registered):
        resp = client.post("/api/ingest/metrics", json=metric_payload(registered, responseTime=250))
        assert resp.status_code == 201
        created = resp.json()

        listed = client.get("/api/metrics", params={"applicationId": registered}).json()
        assert listed == [created]
        assert listed[0]["responseTime"] == 250

    def test_create_metric_endpoint(self, client, registered):
        resp = client.post("/api/metrics", json=metric_payload(registered, cpuUsage=55.5))
        assert resp.status_code == 201
        assert resp.json()["cpuUsage"] == 55.5

    def test_invalid_metric(self, client, registered):
        resp = client.post("/api/ingest/metrics", json=metric_payload(registered, throughput=-1))
        assert resp.status_code == 400
        assert client.get("/api/metrics").json() == []

    def test_unknown_application(self, client):
        resp = client.post("/api/ingest/metrics", json=metric_payload("missing"))
        assert resp.status_code == 404
        assert client.get("/api/metrics").json() == []

    def test_limit(self, client, registered):
        for _ in range(5):
            client.post("/api/metrics", json=metric_payload(registered))
        assert len(client.get("/api/metrics", params={"limit": 3}).json()) == 3

    def test_time_range_mode(self, client, registered):
        before = datetime.now(timezone.utc) - timedelta(seconds=1)
        client.post("/api/metrics", json=metric_payload(registered))
        after = datetime.now(timezone.utc) + timedelta(seconds=1)

        inside = client.get(
            "/api/metrics", params={"start": before.isoformat(), "end": after.isoformat()}
        ).json()
        assert len(inside) == 1

        later = client.get(
            "/api/metrics",
            params={"start": after.isoformat(), "end": (after + timedelta(hours=1)).isoformat()},
        ).json()
        assert later == []

    def test_bad_query_param(self, client):
        assert client.get("/api/metrics", params={"limit": "many"}).status_code == 400

    def test_non_finite_rejected(self, client, registered):
        body = (
            '{"applicationId": "' + registered + '", "responseTime": 1e999, '
            '"throughput": 10, "errorRate": 0, "successRate": 100}'
        )
        resp = client.post(
            "/api/metrics", content=body, headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid metric data"
        assert client.get("/api/metrics").status_code == 200
        assert client.get("/api/metrics").json() == []

    @pytest.mark.parametrize("field,value", [
        ("responseTime", "250"),
        ("throughput", True),
        ("cpuUsage", "12.5"),
    ])
    def test_no_type_coercion(self, client, registered, field, value):
        resp = client.post("/api/metrics", json=metric_payload(registered, **{field: value}))
        assert resp.status_code == 400
        assert client.get("/api/metrics").json() == []


class TestBulk:
    def test_bulk_metrics_partial(self, client, registered):
        records = [
            {"responseTime": 100, "throughput": 10, "errorRate": 0, "successRate": 100},
            {"responseTime": "fast", "throughput": 10, "errorRate": 0, "successRate": 100},
            {"responseTime": 300, "throughput": 10, "errorRate": 1, "successRate": 99},
        ]
        resp = client.post("/api/ingest/metrics/bulk", json={"applicationId": registered, "metrics": records})
        assert resp.status_code == 201
        assert resp.json() == {"message": "Successfully ingested 2 metrics", "count": 2}
        assert len(client.get("/api/metrics").json()) == 2

    def test_bulk_missing_application_id(self, client, registered):
        resp = client.post("/api/ingest/metrics/bulk", json={"metrics": [metric_payload(registered)]})
        assert resp.status_code == 400
        assert client.get("/api/metrics").json() == []

    def test_bulk_unknown_application(self, client):
        resp = client.post("/api/ingest/errors/bulk", json={"applicationId": "missing", "errors": []})
        assert resp.status_code == 404

    def test_bulk_errors(self, client, registered):
        records = [error_payload(registered), {"message": "no type"}]
        resp = client.post("/api/ingest/errors/bulk", json={"applicationId": registered, "errors": records})
        assert resp.status_code == 201
        assert resp.json()["count"] == 1

    def test_bulk_body_not_object(self, client):
        assert client.post("/api/ingest/metrics/bulk", json=[1, 2]).status_code == 400


class TestErrors:
    def test_create_and_list(self, client, registered):
        resp = client.post("/api/errors", json=error_payload(registered, stackTrace="at x"))
        assert resp.status_code == 201
        assert resp.json()["count"] == 1
        listed = client.get("/api/errors", params={"applicationId": registered}).json()
        assert listed[0]["stackTrace"] == "at x"

    def test_invalid(self, client, registered):
        assert client.post("/api/errors", json=error_payload(registered, count=0)).status_code == 400

    def test_boolean_count_rejected(self, client, registered):
        assert client.post("/api/errors", json=error_payload(registered, count=True)).status_code == 400


class TestAlerts:
    def test_acknowledge_lifecycle_scenario(self, client, registered):
        created = client.post("/api/alerts", json=alert_payload(registered)).json()
        assert created["acknowledged"] is False
        assert created["acknowledgedAt"] is None

        pending = client.get("/api/alerts", params={"acknowledged": "false"}).json()
        assert [a["id"] for a in pending] == [created["id"]]

        resp = client.patch(f"/api/alerts/{created['id']}/acknowledge")
        assert resp.status_code == 200
        assert resp.json()["acknowledged"] is True

        acked = client.get("/api/alerts", params={"acknowledged": "true"}).json()
        assert [a["id"] for a in acked] == [created["id"]]
        assert client.get("/api/alerts", params={"acknowledged": "false"}).json() == []

    def test_acknowledge_twice(self, client, registered):
        alert_id = client.post("/api/alerts", json=alert_payload(registered)).json()["id"]
        first = client.patch(f"/api/alerts/{alert_id}/acknowledge").json()
        second = client.patch(f"/api/alerts/{alert_id}/acknowledge").json()
        assert second["acknowledgedAt"] == first["acknowledgedAt"]

    @pytest.mark.parametrize("field,value", [("acknowledged", "yes"), ("threshold", "500")])
    def test_no_type_coercion(self, client, registered, field, value):
        resp = client.post("/api/alerts", json=alert_payload(registered, **{field: value}))
        assert resp.status_code == 400
        assert client.get("/api/alerts").json() == []

    def test_acknowledge_unknown(self, client):
        resp = client.patch("/api/alerts/missing/acknowledge")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Alert not found"

    def test_filter_by_application(self, client, registered):
        other = client.post("/api/ingest/register", json={"name": "other"}).json()["applicationId"]
        client.post("/api/alerts", json=alert_payload(registered))
        client.post("/api/alerts", json=alert_payload(other))
        listed = client.get("/api/alerts", params={"applicationId": other}).json()
        assert [a["applicationId"] for a in listed] == [other]


class TestPushChannel:
    def test_events_for_each_kind(self, client, registered):
        with client.websocket_connect("/ws") as ws:
            metric = client.post("/api/metrics", json=metric_payload(registered)).json()
            assert ws.receive_json() == {"type": "metric", "data": metric}

            client.post("/api/errors", json=error_payload(registered))
            assert ws.receive_json()["type"] == "error"

            alert = client.post("/api/alerts", json=alert_payload(registered)).json()
            assert ws.receive_json()["type"] == "alert"

            client.patch(f"/api/alerts/{alert['id']}/acknowledge")
            event = ws.receive_json()
            assert event["type"] == "alert"
            assert event["data"]["acknowledged"] is True

    def test_every_connected_channel_receives(self, client, registered):
        with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
            client.post("/api/ingest/metrics", json=metric_payload(registered))
            assert a.receive_json()["type"] == "metric"
            assert b.receive_json()["type"] == "metric"

    def test_bulk_publishes_per_record(self, client, registered):
        records = [metric_payload(registered), metric_payload(registered, errorRate=500)]
        with client.websocket_connect("/ws") as ws:
            client.post("/api/ingest/metrics/bulk", json={"applicationId": registered, "metrics": records})
            assert ws.receive_json()["type"] == "metric"

    def test_rejected_write_not_published(self, client, registered):
        with client.websocket_connect("/ws") as ws:
            client.post("/api/metrics", json=metric_payload(registered, successRate=101))
            client.post("/api/errors", json=error_payload(registered))
            assert ws.receive_json()["type"] == "error"

    def test_binary_frame_ignored(self, client, registered):
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\x00\x01")
            ws.send_text("ping")
            client.post("/api/metrics", json=metric_payload(registered))
            assert ws.receive_json()["type"] == "metric"
