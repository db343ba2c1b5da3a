"""Synthetic load: periodic metrics, errors and alerts for every application."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass

from vigil.config import GeneratorConfig
from vigil.core.pipeline import IngestionPipeline
from vigil.errors import VigilError
from vigil.models import Application, Metric, Severity

logger = logging.getLogger("vigil.generator")

ERROR_TYPES = (
    "NullPointerException",
    "TimeoutException",
    "DatabaseConnectionException",
    "ValidationError",
)
ENDPOINTS = ("/api/users", "/api/payments/process", "/api/auth/login", "/api/orders")
SAMPLE_STACK_TRACE = "at com.example.service.UserService.getUser(UserService.java:42)"

# alert_type -> fixed threshold
ALERT_THRESHOLDS: dict[str, float] = {
    "high_response_time": 500.0,
    "cpu_usage": 80.0,
    "error_rate": 1.0,
}


@dataclass(slots=True)
class TickResult:
    """Counts of records written during one generator round."""

    metrics: int = 0
    errors: int = 0
    alerts: int = 0
    failures: int = 0


def build_metric_payload(app: Application, rng: random.Random) -> dict:
    return {
        "applicationId": app.id,
        "responseTime": rng.random() * 500 + 100,
        "throughput": rng.random() * 2000 + 500,
        "errorRate": rng.random() * 2,
        "successRate": 100 - rng.random() * 2,
        "cpuUsage": rng.random() * 100,
        "memoryUsage": rng.random() * 100,
    }


def build_error_payload(app: Application, rng: random.Random) -> dict:
    return {
        "applicationId": app.id,
        "errorType": rng.choice(ERROR_TYPES),
        "message": f"Error occurred in {app.name}",
        "endpoint": rng.choice(ENDPOINTS),
        "stackTrace": SAMPLE_STACK_TRACE,
        "count": 1,
    }


def build_alert_payload(app: Application, metric: Metric, rng: random.Random) -> dict:
    """Alert derived from the metric generated in the same round."""
    alert_type = rng.choice(tuple(ALERT_THRESHOLDS))
    severity = (
        Severity.CRITICAL
        if metric.response_time > 400 or metric.error_rate > 1
        else Severity.WARNING
    )
    current_value = {
        "high_response_time": metric.response_time,
        "cpu_usage": metric.cpu_usage if metric.cpu_usage is not None else 0.0,
        "error_rate": metric.error_rate,
    }[alert_type]
    return {
        "applicationId": app.id,
        "alertType": alert_type,
        "severity": severity.value,
        "message": f"{alert_type.replace('_', ' ', 1)} threshold exceeded for {app.name}",
        "threshold": ALERT_THRESHOLDS[alert_type],
        "currentValue": current_value,
        "acknowledged": False,
    }


class LoadGenerator:
    """Feeds synthetic records through the public pipeline on a fixed cadence."""

    def __init__(
        self,
        pipeline: IngestionPipeline,
        config: GeneratorConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.config = config or GeneratorConfig()
        self.rng = rng or random.Random()

    async def tick(self) -> TickResult:
        """Run one round over every current application."""
        result = TickResult()
        try:
            apps = self.pipeline.store.list_applications()
        except VigilError:
            logger.exception("Generator could not list applications")
            return result

        for app in apps:
            try:
                await self._generate_for(app, result)
            except Exception:
                result.failures += 1
                logger.exception("Synthetic load failed for application %s", app.name)
        return result

    async def _generate_for(self, app: Application, result: TickResult) -> None:
        metric = await self.pipeline.ingest_metric(build_metric_payload(app, self.rng))
        result.metrics += 1

        if self.rng.random() < self.config.error_probability:
            await self.pipeline.ingest_error(build_error_payload(app, self.rng))
            result.errors += 1

        if self.rng.random() < self.config.alert_probability:
            await self.pipeline.create_alert(build_alert_payload(app, metric, self.rng))
            result.alerts += 1

    async def run(self) -> None:
        """Tick every ``config.interval`` seconds until cancelled."""
        logger.info("Load generator started (every %.1fs)", self.config.interval)
        try:
            while True:
                await asyncio.sleep(self.config.interval)
                result = await self.tick()
                logger.debug(
                    "Generated %d metrics, %d errors, %d alerts (%d failures)",
                    result.metrics,
                    result.errors,
                    result.alerts,
                    result.failures,
                )
        except asyncio.CancelledError:
            logger.info("Load generator stopped")
            raise
