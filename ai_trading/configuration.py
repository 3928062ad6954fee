"""Utilities for loading and updating the trading configuration."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

import logging_setup
from ai_trading.config.models import (
    EmergencyConfig,
    RiskLimits,
    TradingConfiguration,
    field_names,
    nested_sections,
)

from services.telemetry import ResiliencePolicy

logger = logging.getLogger(__name__)


def _ensure_logger_level(target: logging.Logger, level: int) -> None:
    """Ensure ``target`` and its handlers are set to at most ``level``."""

    if target.level in {logging.NOTSET} or target.level > level:
        target.setLevel(level)
    for handler in target.handlers:
        if handler.level in {logging.NOTSET} or handler.level > level:
            handler.setLevel(level)


def _debug_to_logging_level(debug_level: int) -> int:
    """Map a debug verbosity integer to a logging level."""

    if debug_level <= 0:
        return logging.WARNING
    if debug_level == 1:
        return logging.INFO
    return logging.DEBUG


def configure_default_logging(debug_level: int = 1) -> bool:
    """Install the project logging setup unless the host application already did.

    Returns ``True`` when handlers were installed by this call.
    """

    root_logger = logging.getLogger()
    already_configured = bool(root_logger.handlers)
    if not already_configured:
        logging_setup.configure_logging(debug=debug_level)

    desired_level = _debug_to_logging_level(debug_level)
    _ensure_logger_level(root_logger, desired_level)
    _ensure_logger_level(logging.getLogger("ai_trading"), desired_level)
    return not already_configured


def _load_json(path: Path) -> Dict[str, Any]:
    """Return parsed JSON payload from ``path`` with helpful error messages."""

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in configuration file {path}: {exc}") from exc


def _ensure_mapping(payload: Any, *, description: str) -> MutableMapping[str, Any]:
    """Return ``payload`` when it is a mapping, otherwise raise ``TypeError``."""

    if isinstance(payload, MutableMapping):
        return payload
    if isinstance(payload, Mapping):
        return dict(payload)
    raise TypeError(f"{description} must be a JSON object, not {type(payload).__name__}.")


def _coerce_bool(value: Any, default: bool = False) -> bool:
    """Return a boolean for ``value`` supporting common string representations."""

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"", "default", "auto"}:
            return default
        if lowered in {"1", "true", "yes", "on", "enabled", "enable"}:
            return True
        if lowered in {"0", "false", "no", "off", "disabled", "disable"}:
            return False
    return bool(value)


def _merge_section(current: Any, section: str, update: Any) -> Any:
    if not isinstance(update, Mapping):
        raise TypeError(f"Configuration '{section}' must be an object when provided.")
    allowed = set(field_names(type(current)))
    unknown = sorted(set(update) - allowed)
    if unknown:
        raise ValueError(f"Unknown '{section}' field(s): {', '.join(unknown)}")
    return dataclasses.replace(current, **dict(update))


def apply_configuration_update(
    config: TradingConfiguration, partial: Mapping[str, Any]
) -> TradingConfiguration:
    """Return a copy of ``config`` with ``partial`` merged in.

    Nested sections (``risk_limits``, ``emergency``, ``resilience``) merge
    field-wise so ``{"risk_limits": {"max_leverage": 2}}`` leaves the remaining
    limits untouched. Unknown keys raise ``ValueError``.
    """

    partial = _ensure_mapping(partial, description="Configuration update")
    allowed = set(field_names(TradingConfiguration))
    unknown = sorted(set(partial) - allowed)
    if unknown:
        raise ValueError(f"Unknown configuration field(s): {', '.join(unknown)}")

    sections = nested_sections()
    changes: Dict[str, Any] = {}
    for key, value in partial.items():
        if key in sections:
            changes[key] = _merge_section(getattr(config, key), key, value)
        elif key == "target_symbols":
            if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
                raise TypeError("Configuration 'target_symbols' must be an array of symbols.")
            changes[key] = [str(symbol) for symbol in value]
        elif key in {"enable_auto_trading", "correlated_var"}:
            changes[key] = _coerce_bool(value, getattr(config, key))
        else:
            changes[key] = value
    return dataclasses.replace(config, **changes)


def validate_trading_config(payload: Mapping[str, Any]) -> TradingConfiguration:
    """Validate and normalise a trading configuration payload."""

    return apply_configuration_update(TradingConfiguration(), payload)


def load_trading_config(path: Path | str) -> TradingConfiguration:
    """Load and validate a trading configuration file from disk."""

    resolved = Path(path).expanduser().resolve()
    payload = _ensure_mapping(_load_json(resolved), description="Trading configuration")
    config = validate_trading_config(payload)
    logger.info("Loaded trading configuration", extra={"path": str(resolved)})
    return config


@dataclass
class Settings:
    """Single entry point for engine configuration with environment overrides."""

    trading: TradingConfiguration
    debug_level: int = 1

    @classmethod
    def from_environment(
        cls,
        *,
        base: Optional[TradingConfiguration] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        env = env if env is not None else os.environ
        config = base or TradingConfiguration()
        config_path = env.get("TRADING_CONFIG_PATH")
        if base is None and config_path:
            config = load_trading_config(config_path)

        limits: Dict[str, Any] = {}
        for key in ("max_position_size", "max_daily_loss", "max_drawdown", "min_cash_ratio", "max_leverage"):
            value = _env_float(env.get(f"TRADING_{key.upper()}"))
            if value is not None:
                limits[key] = value

        update: Dict[str, Any] = {}
        if limits:
            update["risk_limits"] = limits
        threshold = _env_float(env.get("TRADING_CONFIDENCE_THRESHOLD"))
        if threshold is not None:
            update["confidence_threshold"] = threshold
        max_trades = _env_int(env.get("TRADING_MAX_TRADES_PER_DAY"))
        if max_trades is not None:
            update["max_trades_per_day"] = max_trades
        symbols = env.get("TRADING_TARGET_SYMBOLS")
        if symbols:
            update["target_symbols"] = [symbol.strip() for symbol in symbols.split(",") if symbol.strip()]
        frequency = env.get("TRADING_REBALANCE_FREQUENCY")
        if frequency:
            update["rebalance_frequency"] = frequency.strip().lower()
        auto_trading = _env_bool(env.get("TRADING_ENABLE_AUTO_TRADING"))
        if auto_trading is not None:
            update["enable_auto_trading"] = auto_trading
        delay = _env_float(env.get("TRADING_TRADE_DELAY_SECONDS"))
        if delay is not None:
            update["trade_delay_seconds"] = delay
        timeout = _env_float(env.get("TRADING_REQUEST_TIMEOUT_SECONDS"))
        if timeout is not None:
            update["request_timeout_seconds"] = timeout
        dry_run = _env_bool(env.get("TRADING_EMERGENCY_DRY_RUN"))
        if dry_run is not None:
            update["emergency"] = {"dry_run": dry_run}

        if update:
            config = apply_configuration_update(config, update)
        debug_level = _env_int(env.get("TRADING_DEBUG"))
        if debug_level is None:
            debug_level = 1
        return cls(trading=config, debug_level=debug_level)


def _env_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _env_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _env_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


__all__ = [
    "EmergencyConfig",
    "ResiliencePolicy",
    "RiskLimits",
    "Settings",
    "TradingConfiguration",
    "apply_configuration_update",
    "configure_default_logging",
    "load_trading_config",
    "validate_trading_config",
]
