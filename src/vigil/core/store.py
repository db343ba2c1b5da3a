"""SQLite store (WAL, foreign keys) for applications, metrics, errors and alerts."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from vigil.errors import StoreError
from vigil.models import Alert, Application, ApplicationStatus, ErrorEvent, Metric

logger = logging.getLogger("vigil.store")

SCHEMA_VERSION = "1"

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS vigil_meta (
    key   TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS applications (
    id                 TEXT PRIMARY KEY,
    name               TEXT NOT NULL,
    status             TEXT NOT NULL,
    uptime             REAL NOT NULL DEFAULT 0,
    avg_response_time  REAL NOT NULL DEFAULT 0,
    created_at         TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS metrics (
    id              TEXT PRIMARY KEY,
    application_id  TEXT NOT NULL REFERENCES applications(id),
    timestamp       TEXT NOT NULL,
    response_time   REAL NOT NULL,
    throughput      REAL NOT NULL,
    error_rate      REAL NOT NULL,
    success_rate    REAL NOT NULL,
    cpu_usage       REAL,
    memory_usage    REAL
);
CREATE INDEX IF NOT EXISTS idx_metrics_app_time
    ON metrics(application_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_metrics_time
    ON metrics(timestamp);

CREATE TABLE IF NOT EXISTS errors (
    id              TEXT PRIMARY KEY,
    application_id  TEXT NOT NULL REFERENCES applications(id),
    timestamp       TEXT NOT NULL,
    error_type      TEXT NOT NULL,
    message         TEXT NOT NULL,
    stack_trace     TEXT,
    endpoint        TEXT,
    count           INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_errors_app_time
    ON errors(application_id, timestamp);

CREATE TABLE IF NOT EXISTS alerts (
    id               TEXT PRIMARY KEY,
    application_id   TEXT NOT NULL REFERENCES applications(id),
    timestamp        TEXT NOT NULL,
    alert_type       TEXT NOT NULL,
    severity         TEXT NOT NULL,
    message          TEXT NOT NULL,
    threshold        REAL NOT NULL,
    current_value    REAL NOT NULL,
    acknowledged     INTEGER NOT NULL DEFAULT 0,
    acknowledged_at  TEXT
);
CREATE INDEX IF NOT EXISTS idx_alerts_app_ack
    ON alerts(application_id, acknowledged);
"""

# Example applications inserted when the applications table is empty.
SEED_APPLICATIONS: tuple[tuple[str, str, float, float], ...] = (
    ("Web Portal", ApplicationStatus.HEALTHY.value, 99.9, 156.0),
    ("API Gateway", ApplicationStatus.WARNING.value, 98.2, 324.0),
    ("User Service", ApplicationStatus.HEALTHY.value, 99.7, 189.0),
    ("Payment Service", ApplicationStatus.CRITICAL.value, 95.1, 892.0),
)

_TABLES = {"applications", "metrics", "errors", "alerts"}
_UPDATABLE_APP_FIELDS = ("name", "status", "uptime", "avg_response_time")

_APP_COLS = "id, name, status, uptime, avg_response_time, created_at"
_METRIC_COLS = (
    "id, application_id, timestamp, response_time, throughput, "
    "error_rate, success_rate, cpu_usage, memory_usage"
)
_ERROR_COLS = (
    "id, application_id, timestamp, error_type, message, "
    "stack_trace, endpoint, count"
)
_ALERT_COLS = (
    "id, application_id, timestamp, alert_type, severity, message, "
    "threshold, current_value, acknowledged, acknowledged_at"
)


def _utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    # Fixed-width form keeps lexical order equal to chronological order.
    return _utc(dt).isoformat(timespec="microseconds")


def _parse_dt(s: str | None) -> datetime | None:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _new_id() -> str:
    return uuid.uuid4().hex


def _app_from_row(r: tuple) -> Application:
    return Application(
        id=r[0],
        name=r[1],
        status=r[2],
        uptime=r[3],
        avg_response_time=r[4],
        created_at=datetime.fromisoformat(r[5]),
    )


def _metric_from_row(r: tuple) -> Metric:
    return Metric(
        id=r[0],
        application_id=r[1],
        timestamp=datetime.fromisoformat(r[2]),
        response_time=r[3],
        throughput=r[4],
        error_rate=r[5],
        success_rate=r[6],
        cpu_usage=r[7],
        memory_usage=r[8],
    )


def _error_from_row(r: tuple) -> ErrorEvent:
    return ErrorEvent(
        id=r[0],
        application_id=r[1],
        timestamp=datetime.fromisoformat(r[2]),
        error_type=r[3],
        message=r[4],
        stack_trace=r[5],
        endpoint=r[6],
        count=r[7],
    )


def _alert_from_row(r: tuple) -> Alert:
    return Alert(
        id=r[0],
        application_id=r[1],
        timestamp=datetime.fromisoformat(r[2]),
        alert_type=r[3],
        severity=r[4],
        message=r[5],
        threshold=r[6],
        current_value=r[7],
        acknowledged=bool(r[8]),
        acknowledged_at=_parse_dt(r[9]),
    )


class VigilStore:
    """SQLite-backed store. Unknown ids return None; sqlite failures raise StoreError."""

    def __init__(self, db_path: Path | str, *, seed: bool = False) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._seed = seed
        self._conn: sqlite3.Connection | None = None
        self._last_timestamp: datetime | None = None

    def __enter__(self) -> VigilStore:
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def open(self) -> None:
        # The API test client drives the event loop from a worker thread.
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA_SQL)
        self._ensure_schema_version()
        if self._seed:
            self.seed_applications()

    def _ensure_schema_version(self) -> None:
        """Set schema version on first run."""
        if self.get_meta("schema_version") is None:
            self.set_meta("schema_version", SCHEMA_VERSION)

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Store is not open")
        return self._conn

    @contextmanager
    def _guard(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run a statement group, committing on success and wrapping sqlite errors."""
        conn = self.conn
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error("Store operation %s failed: %s", operation, exc)
            raise StoreError(f"Failed to {operation}") from exc

    def _next_timestamp(self) -> datetime:
        """Write-time timestamp, never earlier than the previous one."""
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    # --- Applications ---

    def seed_applications(self) -> int:
        """Insert the example applications if none exist. Returns rows inserted."""
        if self.count("applications") > 0:
            return 0
        for name, status, uptime, avg in SEED_APPLICATIONS:
            self.create_application(
                name=name, status=status, uptime=uptime, avg_response_time=avg
            )
        logger.info("Seeded %d example applications", len(SEED_APPLICATIONS))
        return len(SEED_APPLICATIONS)

    def list_applications(self) -> list[Application]:
        with self._guard("fetch applications") as conn:
            cur = conn.execute(f"SELECT {_APP_COLS} FROM applications ORDER BY name")
            return [_app_from_row(r) for r in cur.fetchall()]

    def get_application(self, application_id: str) -> Application | None:
        with self._guard("fetch application") as conn:
            cur = conn.execute(
                f"SELECT {_APP_COLS} FROM applications WHERE id=?", (application_id,)
            )
            row = cur.fetchone()
        return _app_from_row(row) if row else None

    def create_application(
        self,
        name: str,
        status: str,
        uptime: float = 0.0,
        avg_response_time: float = 0.0,
    ) -> Application:
        app = Application(
            id=_new_id(),
            name=name,
            status=status,
            uptime=uptime,
            avg_response_time=avg_response_time,
        )
        with self._guard("create application") as conn:
            conn.execute(
                f"INSERT INTO applications({_APP_COLS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    app.id,
                    app.name,
                    app.status,
                    app.uptime,
                    app.avg_response_time,
                    _iso(app.created_at),
                ),
            )
        return app

    def update_application(self, application_id: str, **fields) -> Application | None:
        """Apply a partial update to the mutable summary fields."""
        updates = {k: v for k, v in fields.items() if k in _UPDATABLE_APP_FIELDS}
        unknown = set(fields) - set(_UPDATABLE_APP_FIELDS)
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        if updates:
            assignments = ", ".join(f"{k}=?" for k in updates)
            with self._guard("update application") as conn:
                conn.execute(
                    f"UPDATE applications SET {assignments} WHERE id=?",
                    (*updates.values(), application_id),
                )
        return self.get_application(application_id)

    # --- Metrics ---

    def list_metrics(
        self, application_id: str | None = None, limit: int = 100
    ) -> list[Metric]:
        sql = f"SELECT {_METRIC_COLS} FROM metrics"
        params: list = []
        if application_id:
            sql += " WHERE application_id=?"
            params.append(application_id)
        sql += " ORDER BY timestamp DESC, rowid DESC LIMIT ?"
        params.append(limit)
        with self._guard("fetch metrics") as conn:
            return [_metric_from_row(r) for r in conn.execute(sql, params).fetchall()]

    def list_metrics_by_time_range(
        self,
        start: datetime,
        end: datetime,
        application_id: str | None = None,
    ) -> list[Metric]:
        """Metrics with start <= timestamp <= end, newest first."""
        sql = f"SELECT {_METRIC_COLS} FROM metrics WHERE timestamp >= ? AND timestamp <= ?"
        params: list = [_iso(start), _iso(end)]
        if application_id:
            sql += " AND application_id=?"
            params.append(application_id)
        sql += " ORDER BY timestamp DESC, rowid DESC"
        with self._guard("fetch metrics") as conn:
            return [_metric_from_row(r) for r in conn.execute(sql, params).fetchall()]

    def create_metric(
        self,
        application_id: str,
        response_time: float,
        throughput: float,
        error_rate: float,
        success_rate: float,
        cpu_usage: float | None = None,
        memory_usage: float | None = None,
    ) -> Metric:
        metric = Metric(
            id=_new_id(),
            application_id=application_id,
            timestamp=self._next_timestamp(),
            response_time=response_time,
            throughput=throughput,
            error_rate=error_rate,
            success_rate=success_rate,
            cpu_usage=cpu_usage,
            memory_usage=memory_usage,
        )
        with self._guard("create metric") as conn:
            conn.execute(
                f"INSERT INTO metrics({_METRIC_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    metric.id,
                    metric.application_id,
                    _iso(metric.timestamp),
                    metric.response_time,
                    metric.throughput,
                    metric.error_rate,
                    metric.success_rate,
                    metric.cpu_usage,
                    metric.memory_usage,
                ),
            )
        return metric

    # --- Errors ---

    def list_errors(
        self, application_id: str | None = None, limit: int = 50
    ) -> list[ErrorEvent]:
        sql = f"SELECT {_ERROR_COLS} FROM errors"
        params: list = []
        if application_id:
            sql += " WHERE application_id=?"
            params.append(application_id)
        sql += " ORDER BY timestamp DESC, rowid DESC LIMIT ?"
        params.append(limit)
        with self._guard("fetch errors") as conn:
            return [_error_from_row(r) for r in conn.execute(sql, params).fetchall()]

    def create_error(
        self,
        application_id: str,
        error_type: str,
        message: str,
        stack_trace: str | None = None,
        endpoint: str | None = None,
        count: int = 1,
    ) -> ErrorEvent:
        error = ErrorEvent(
            id=_new_id(),
            application_id=application_id,
            timestamp=self._next_timestamp(),
            error_type=error_type,
            message=message,
            stack_trace=stack_trace,
            endpoint=endpoint,
            count=count,
        )
        with self._guard("create error") as conn:
            conn.execute(
                f"INSERT INTO errors({_ERROR_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    error.id,
                    error.application_id,
                    _iso(error.timestamp),
                    error.error_type,
                    error.message,
                    error.stack_trace,
                    error.endpoint,
                    error.count,
                ),
            )
        return error

    # --- Alerts ---

    def list_alerts(
        self,
        application_id: str | None = None,
        acknowledged: bool | None = None,
    ) -> list[Alert]:
        sql = f"SELECT {_ALERT_COLS} FROM alerts"
        conditions: list[str] = []
        params: list = []
        if application_id:
            conditions.append("application_id=?")
            params.append(application_id)
        if acknowledged is not None:
            conditions.append("acknowledged=?")
            params.append(int(acknowledged))
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY timestamp DESC, rowid DESC"
        with self._guard("fetch alerts") as conn:
            return [_alert_from_row(r) for r in conn.execute(sql, params).fetchall()]

    def get_alert(self, alert_id: str) -> Alert | None:
        with self._guard("fetch alert") as conn:
            row = conn.execute(
                f"SELECT {_ALERT_COLS} FROM alerts WHERE id=?", (alert_id,)
            ).fetchone()
        return _alert_from_row(row) if row else None

    def create_alert(
        self,
        application_id: str,
        alert_type: str,
        severity: str,
        message: str,
        threshold: float,
        current_value: float,
        acknowledged: bool = False,
    ) -> Alert:
        timestamp = self._next_timestamp()
        alert = Alert(
            id=_new_id(),
            application_id=application_id,
            timestamp=timestamp,
            alert_type=alert_type,
            severity=severity,
            message=message,
            threshold=threshold,
            current_value=current_value,
            acknowledged=acknowledged,
            acknowledged_at=timestamp if acknowledged else None,
        )
        with self._guard("create alert") as conn:
            conn.execute(
                f"INSERT INTO alerts({_ALERT_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    alert.id,
                    alert.application_id,
                    _iso(alert.timestamp),
                    alert.alert_type,
                    alert.severity,
                    alert.message,
                    alert.threshold,
                    alert.current_value,
                    int(alert.acknowledged),
                    _iso(alert.acknowledged_at) if alert.acknowledged_at else None,
                ),
            )
        return alert

    def acknowledge_alert(self, alert_id: str) -> Alert | None:
        """Set acknowledged/acknowledged_at once. Repeat calls leave the record as is."""
        with self._guard("acknowledge alert") as conn:
            conn.execute(
                "UPDATE alerts SET acknowledged=1, acknowledged_at=? "
                "WHERE id=? AND acknowledged=0",
                (_iso(datetime.now(timezone.utc)), alert_id),
            )
        return self.get_alert(alert_id)

    # --- Counts / meta ---

    def count(self, table: str) -> int:
        if table not in _TABLES:
            raise ValueError(f"Unknown table: {table}")
        with self._guard(f"count {table}") as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def get_meta(self, key: str) -> str | None:
        cur = self.conn.execute("SELECT value FROM vigil_meta WHERE key=?", (key,))
        row = cur.fetchone()
        return row[0] if row else None

    def set_meta(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO vigil_meta(key, value) VALUES (?, ?)",
            (key, value),
        )
        self.conn.commit()
