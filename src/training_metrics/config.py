import logging
import os
from dataclasses import dataclass

from .logging import setup_logging

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise RuntimeError(f"{name} must be a boolean flag, got {raw!r}")


def _env_number(name: str, default: str, cast):
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise RuntimeError(f"{name} must be numeric, got {raw!r}") from exc


@dataclass(frozen=True)
class EngineConfig:
    derived_kpis_enabled: bool = True
    kpi_diagnostics_enabled: bool = False
    bodyweight_kg: float = 70.0
    max_rows: int | None = 50_000
    timezone: str = "UTC"
    memoize: bool = True
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        bodyweight_kg = _env_number("TRAINING_METRICS_BODYWEIGHT_KG", "70", float)
        if bodyweight_kg <= 0:
            raise RuntimeError("TRAINING_METRICS_BODYWEIGHT_KG must be positive")
        max_rows = _env_number("TRAINING_METRICS_MAX_ROWS", "50000", int)

        return cls(
            derived_kpis_enabled=_env_flag("ANALYTICS_DERIVED_KPIS_ENABLED", True),
            kpi_diagnostics_enabled=_env_flag("KPI_DIAGNOSTICS_ENABLED", False),
            bodyweight_kg=bodyweight_kg,
            max_rows=max_rows if max_rows > 0 else None,
            timezone=os.environ.get("TRAINING_METRICS_TIMEZONE", "UTC"),
            memoize=_env_flag("TRAINING_METRICS_MEMOIZE", True),
            log_format=os.environ.get("TRAINING_METRICS_LOG_FORMAT", "json"),
        )

    def cache_key_parts(self) -> dict:
        """Config state that changes engine output."""
        return {
            "derived_kpis_enabled": self.derived_kpis_enabled,
            "kpi_diagnostics_enabled": self.kpi_diagnostics_enabled,
            "bodyweight_kg": self.bodyweight_kg,
            "timezone": self.timezone,
        }

    def configure_logging(self, level: int = logging.INFO) -> logging.Handler:
        """Install the package log handler in the configured ``log_format``."""
        return setup_logging(self.log_format, level)
