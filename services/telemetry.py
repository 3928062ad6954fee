"""Timeouts, retries and health tracking for broker and AI service calls."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass
class ResiliencePolicy:
    """Default resilience configuration for collaborator calls."""

    request_timeout: float = 10.0
    max_retries: int = 1
    retry_backoff: float = 0.5
    circuit_breaker_threshold: int = 5
    circuit_breaker_reset_s: float = 30.0

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "ResiliencePolicy":
        if not payload:
            return cls()
        kwargs: Dict[str, Any] = {}
        for key in (
            "request_timeout",
            "max_retries",
            "retry_backoff",
            "circuit_breaker_threshold",
            "circuit_breaker_reset_s",
        ):
            if key in payload:
                kwargs[key] = payload[key]
        return cls(**kwargs)


@dataclass
class ServiceCircuitState:
    """Consecutive-failure tracker that short-circuits a misbehaving service."""

    threshold: int
    reset_seconds: float
    failure_count: int = 0
    opened_at: Optional[float] = None

    def is_open(self) -> bool:
        if self.opened_at is None:
            return False
        if (time.time() - self.opened_at) >= self.reset_seconds:
            self.failure_count = 0
            self.opened_at = None
            return False
        return True

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.failure_count >= self.threshold and self.opened_at is None:
            self.opened_at = time.time()

    def record_success(self) -> None:
        self.failure_count = 0
        self.opened_at = None


class ServiceUnavailable(RuntimeError):
    """Raised without calling the service while its circuit is open."""


@dataclass
class ServiceStatus:
    status: str
    reason: Optional[str] = None
    last_success: Optional[datetime] = None
    last_checked: Optional[datetime] = None
    failures: int = 0
    successes: int = 0


class Telemetry:
    """Run collaborator calls under a policy and keep per-service health."""

    def __init__(self, *, policy: Optional[ResiliencePolicy] = None) -> None:
        self.policy = policy or ResiliencePolicy()
        self.metrics: Dict[str, Any] = {}
        self.service_status: Dict[str, ServiceStatus] = {}
        self._circuits: Dict[str, ServiceCircuitState] = {}

    def _circuit_for(self, service: str) -> ServiceCircuitState:
        circuit = self._circuits.get(service)
        if circuit is None:
            circuit = ServiceCircuitState(
                threshold=self.policy.circuit_breaker_threshold,
                reset_seconds=self.policy.circuit_breaker_reset_s,
            )
            self._circuits[service] = circuit
        return circuit

    def mark_service_healthy(self, service: str) -> None:
        status = self.service_status.setdefault(service, ServiceStatus(status="healthy"))
        now = datetime.now(timezone.utc)
        status.status = "healthy"
        status.reason = None
        status.last_success = now
        status.last_checked = now
        status.successes += 1

    def mark_service_degraded(self, service: str, reason: str) -> None:
        status = self.service_status.setdefault(service, ServiceStatus(status="degraded"))
        status.status = "degraded"
        status.reason = reason
        status.last_checked = datetime.now(timezone.utc)
        status.failures += 1

    def record_metric(self, name: str, value: Any) -> None:
        self.metrics[name] = value

    async def execute_with_resilience(
        self,
        service: str,
        operation: str,
        func: Callable[[], Awaitable[Any]],
        *,
        retries: Optional[int] = None,
        timeout: Optional[float] = None,
        non_retryable: Tuple[Type[BaseException], ...] = (),
        expected_errors: Tuple[Type[BaseException], ...] = (),
        circuit_key: Optional[str] = None,
        bypass_circuit: bool = False,
    ) -> Any:
        """Await ``func()`` with a bounded timeout, optional retries and circuit breaking.

        ``retries`` overrides the policy; order submissions pass ``retries=0`` so
        a slow acknowledgement is never turned into a duplicate order.
        Exceptions listed in ``non_retryable`` are re-raised immediately.
        ``expected_errors`` are answers from a reachable service (a rejected
        order, for instance); they are re-raised without touching the circuit.
        ``circuit_key`` scopes the circuit below the service, so a per-symbol
        failure only trips that symbol's circuit. A call counts as one circuit
        failure once its retries are exhausted.
        ``bypass_circuit`` still records the outcome but never short-circuits.
        """

        circuit = self._circuit_for(circuit_key or service)
        if circuit.is_open() and not bypass_circuit:
            self.mark_service_degraded(service, "circuit_open")
            logger.warning("Circuit open for %s; skipping %s", circuit_key or service, operation)
            raise ServiceUnavailable(f"Circuit open for {circuit_key or service}")

        max_retries = self.policy.max_retries if retries is None else max(0, retries)
        request_timeout = timeout if timeout is not None else self.policy.request_timeout
        metric_name = f"{service}.{operation}.latency_ms"
        attempt = 0
        while True:
            attempt += 1
            started = time.perf_counter()
            try:
                result = await asyncio.wait_for(func(), timeout=request_timeout)
            except expected_errors:
                self.record_metric(metric_name, round((time.perf_counter() - started) * 1000, 2))
                self.mark_service_healthy(service)
                raise
            except Exception as exc:
                self.record_metric(metric_name, round((time.perf_counter() - started) * 1000, 2))
                reason = "timeout" if isinstance(exc, asyncio.TimeoutError) else str(exc)
                self.mark_service_degraded(service, reason)
                logger.warning(
                    "%s.%s failed (attempt %s/%s): %s",
                    service,
                    operation,
                    attempt,
                    max_retries + 1,
                    reason,
                )
                if isinstance(exc, non_retryable) or attempt > max_retries:
                    circuit.record_failure()
                    raise
                await asyncio.sleep(self.policy.retry_backoff * attempt)
                continue
            self.record_metric(metric_name, round((time.perf_counter() - started) * 1000, 2))
            circuit.record_success()
            self.mark_service_healthy(service)
            return result

    def health_snapshot(self) -> Dict[str, Any]:
        services: Dict[str, Any] = {}
        for name, status in self.service_status.items():
            services[name] = {
                "status": status.status,
                "reason": status.reason,
                "last_success": status.last_success.isoformat() if status.last_success else None,
                "last_checked": status.last_checked.isoformat() if status.last_checked else None,
                "failures": status.failures,
                "successes": status.successes,
            }
        overall = "healthy"
        if any(status.status != "healthy" for status in self.service_status.values()):
            overall = "degraded"
        return {"status": overall, "services": services}


__all__ = ["ResiliencePolicy", "ServiceCircuitState", "ServiceUnavailable", "Telemetry"]
