"""Process probe: turn a live process (and optional health URL) into a metric payload."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx
import psutil

logger = logging.getLogger("vigil.probe")


@dataclass(frozen=True, slots=True)
class ProbeSample:
    """Point-in-time observation of a local process."""

    pid: int
    cpu_percent: float
    memory_percent: float
    response_time_ms: float = 0.0
    ok: bool = True


def _time_request(url: str, timeout: float) -> tuple[float, bool]:
    """GET ``url`` once. Returns (elapsed ms, success)."""
    started = time.perf_counter()
    try:
        response = httpx.get(url, timeout=timeout)
        ok = response.status_code < 500
    except httpx.HTTPError as exc:
        logger.warning("Health check %s failed: %s", url, exc)
        ok = False
    return round((time.perf_counter() - started) * 1000, 2), ok


def capture_sample(
    pid: int,
    url: str | None = None,
    cpu_interval: float = 0.5,
    timeout: float = 5.0,
) -> ProbeSample | None:
    """Sample CPU/memory for ``pid``. Returns None if the process is unavailable."""
    try:
        proc = psutil.Process(pid)
        cpu = proc.cpu_percent(interval=cpu_interval)
        mem = proc.memory_percent()
    except psutil.ZombieProcess:
        logger.warning("Zombie process %d", pid)
        return None
    except psutil.NoSuchProcess:
        logger.warning("Process %d no longer exists", pid)
        return None
    except psutil.AccessDenied:
        logger.warning("Access denied reading process %d", pid)
        return None

    elapsed, ok = _time_request(url, timeout) if url else (0.0, True)
    # psutil reports per-core cpu; clamp to a 0-100 share of the machine.
    cpu = min(cpu / max(psutil.cpu_count() or 1, 1), 100.0)
    return ProbeSample(
        pid=pid,
        cpu_percent=round(cpu, 1),
        memory_percent=round(min(mem, 100.0), 2),
        response_time_ms=elapsed,
        ok=ok,
    )


def sample_to_metric(application_id: str, sample: ProbeSample) -> dict:
    """Build an ingestion payload (camelCase) from a probe sample."""
    error_rate = 0.0 if sample.ok else 100.0
    return {
        "applicationId": application_id,
        "responseTime": sample.response_time_ms,
        "throughput": 0.0,
        "errorRate": error_rate,
        "successRate": 100.0 - error_rate,
        "cpuUsage": sample.cpu_percent,
        "memoryUsage": sample.memory_percent,
    }
