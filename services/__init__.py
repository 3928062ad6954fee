"""Service-level utilities shared by the trading engine collaborators."""

from .telemetry import ResiliencePolicy, ServiceCircuitState, ServiceUnavailable, Telemetry

__all__ = ["ResiliencePolicy", "ServiceCircuitState", "ServiceUnavailable", "Telemetry"]
