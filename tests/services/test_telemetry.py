import asyncio

import pytest

from services.telemetry import ResiliencePolicy, ServiceUnavailable, Telemetry


class Counter:
    def __init__(self, failures: int, error: Exception = RuntimeError("boom")) -> None:
        self.calls = 0
        self.failures = failures
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


def _telemetry(**policy) -> Telemetry:
    policy.setdefault("retry_backoff", 0.0)
    return Telemetry(policy=ResiliencePolicy(**policy))


def test_retries_until_success_and_marks_healthy() -> None:
    telemetry = _telemetry(max_retries=2)
    func = Counter(failures=2)

    assert asyncio.run(telemetry.execute_with_resilience("broker", "read", func)) == "ok"
    assert func.calls == 3
    snapshot = telemetry.health_snapshot()
    assert snapshot["status"] == "healthy"
    assert snapshot["services"]["broker"]["failures"] == 2
    assert "broker.read.latency_ms" in telemetry.metrics


def test_retries_override_and_non_retryable() -> None:
    telemetry = _telemetry(max_retries=3)
    func = Counter(failures=5)
    with pytest.raises(RuntimeError):
        asyncio.run(telemetry.execute_with_resilience("broker", "order", func, retries=0))
    assert func.calls == 1

    fatal = Counter(failures=5, error=PermissionError("denied"))
    with pytest.raises(PermissionError):
        asyncio.run(telemetry.execute_with_resilience("broker", "read", fatal, non_retryable=(PermissionError,)))
    assert fatal.calls == 1
    assert telemetry.health_snapshot()["status"] == "degraded"


def test_timeout_is_reported() -> None:
    telemetry = _telemetry(max_retries=0)

    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(telemetry.execute_with_resilience("ai", "predict", slow, timeout=0.01))
    assert telemetry.service_status["ai"].reason == "timeout"


def test_circuit_opens_after_consecutive_failures() -> None:
    telemetry = _telemetry(max_retries=0, circuit_breaker_threshold=2, circuit_breaker_reset_s=60)
    func = Counter(failures=10)
    for _ in range(2):
        with pytest.raises(RuntimeError):
            asyncio.run(telemetry.execute_with_resilience("ai", "predict", func))

    with pytest.raises(ServiceUnavailable):
        asyncio.run(telemetry.execute_with_resilience("ai", "predict", func))
    assert func.calls == 2


def test_policy_from_mapping_ignores_unknown_keys() -> None:
    policy = ResiliencePolicy.from_mapping({"max_retries": 4, "other": True})
    assert policy.max_retries == 4
    assert ResiliencePolicy.from_mapping(None) == ResiliencePolicy()


def test_circuit_counts_one_failure_per_call() -> None:
    telemetry = _telemetry(max_retries=2, circuit_breaker_threshold=2, circuit_breaker_reset_s=60)
    func = Counter(failures=3)
    with pytest.raises(RuntimeError):
        asyncio.run(telemetry.execute_with_resilience("ai", "predict", func))

    assert func.calls == 3
    assert asyncio.run(telemetry.execute_with_resilience("ai", "predict", Counter(failures=0))) == "ok"


def test_expected_errors_leave_circuit_closed() -> None:
    telemetry = _telemetry(max_retries=3, circuit_breaker_threshold=1, circuit_breaker_reset_s=60)
    rejected = Counter(failures=5, error=LookupError("rejected"))
    for _ in range(3):
        with pytest.raises(LookupError):
            asyncio.run(telemetry.execute_with_resilience("broker", "order", rejected, expected_errors=(LookupError,)))

    assert rejected.calls == 3
    assert telemetry.health_snapshot()["status"] == "healthy"


def test_circuit_key_scopes_failures_and_bypass_still_calls() -> None:
    telemetry = _telemetry(max_retries=0, circuit_breaker_threshold=1, circuit_breaker_reset_s=60)
    with pytest.raises(RuntimeError):
        asyncio.run(telemetry.execute_with_resilience("ai", "predict", Counter(failures=1), circuit_key="ai:A"))

    with pytest.raises(ServiceUnavailable):
        asyncio.run(telemetry.execute_with_resilience("ai", "predict", Counter(failures=0), circuit_key="ai:A"))
    assert asyncio.run(telemetry.execute_with_resilience("ai", "predict", Counter(failures=0), circuit_key="ai:B")) == "ok"
    assert (
        asyncio.run(
            telemetry.execute_with_resilience("ai", "predict", Counter(failures=0), circuit_key="ai:A", bypass_circuit=True)
        )
        == "ok"
    )
