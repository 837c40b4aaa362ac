"""Metrics for discovery runs: structured log lines, optionally mirrored to StatsD."""

from __future__ import annotations

import logging
import secrets
from enum import Enum
from typing import Any, Literal

from app.config import Settings, settings

try:  # pragma: no cover - optional dependency
    from statsd import StatsClient
except ImportError:  # pragma: no cover - optional dependency guard
    StatsClient = None  # type: ignore[assignment]

logger = logging.getLogger("app.metrics")

MetricKind = Literal["timing", "gauge", "counter"]
TagValue = str | int | float | None


def _tag_value(value: Any) -> TagValue:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None or isinstance(value, int | float | str):
        return value
    return str(value)


class MetricsReporter:
    """Emit run, channel and store metrics under one namespace.

    Every payload carries the environment tag so dashboards can split staging
    runs from production. Counters and timings honour ``metrics_sample_rate``;
    gauges and alerts are never sampled.
    """

    def __init__(self, config: Settings | None = None) -> None:
        config = config or settings
        self._disabled = config.metrics_disable
        self._namespace = (config.metrics_namespace or "discovery").strip(".")
        self._backend = (config.metrics_backend or "stdout").lower()
        self._sample_rate = max(0.0, min(config.metrics_sample_rate, 1.0))
        self._schema_version = config.metrics_schema_version
        self._base_tags: dict[str, TagValue] = {"environment": config.environment}
        self._statsd: StatsClient | None = None
        if self._backend == "statsd" and not self._disabled:
            self._statsd = self._connect_statsd(config)

    @property
    def enabled(self) -> bool:
        return not self._disabled

    def timing(self, metric: str, value_ms: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("timing", metric, value_ms, tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("gauge", metric, value, tags)

    def increment(
        self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None
    ) -> None:
        self._emit("counter", metric, value, tags)

    def alert(
        self,
        metric: str,
        *,
        value: float,
        threshold: float,
        severity: str,
        tags: dict[str, Any] | None = None,
    ) -> None:
        """Log an alert payload, e.g. when a run ends in ``failed``."""
        if self._disabled:
            return
        self._log_event(
            "alert",
            {
                "metric": self.qualified(metric),
                "value": round(float(value), 4),
                "threshold": round(float(threshold), 4),
                "severity": severity,
                "schema_version": self._schema_version,
                "tags": self._tags(tags),
            },
        )

    def qualified(self, metric: str) -> str:
        """Prefix ``metric`` with the namespace unless it already carries it."""
        trimmed = (metric or "").strip()
        if not trimmed:
            return self._namespace
        if trimmed.startswith(f"{self._namespace}."):
            return trimmed
        return f"{self._namespace}.{trimmed}"

    def _emit(
        self, kind: MetricKind, metric: str, value: float | None, tags: dict[str, Any] | None
    ) -> None:
        if self._disabled or value is None:
            return
        rate = 1.0 if kind == "gauge" else self._sample_rate
        if rate < 1.0 and secrets.randbelow(1_000_000) / 1_000_000 > rate:
            return
        name = self.qualified(metric)
        payload: dict[str, Any] = {
            "metric": name,
            "value": round(float(value), 4),
            "type": kind,
            "tags": self._tags(tags),
        }
        if rate < 1.0:
            payload["sample_rate"] = round(rate, 4)
        self._log_event("metric", payload)
        if self._statsd is not None:
            self._send_statsd(kind, name, value, rate)

    def _tags(self, tags: dict[str, Any] | None) -> dict[str, TagValue]:
        merged = dict(self._base_tags)
        for key, value in (tags or {}).items():
            merged[key] = _tag_value(value)
        return merged

    def _send_statsd(self, kind: MetricKind, name: str, value: float, rate: float) -> None:
        assert self._statsd is not None
        try:
            match kind:
                case "timing":
                    self._statsd.timing(name, value, rate=rate)
                case "gauge":
                    self._statsd.gauge(name, value)
                case "counter":
                    self._statsd.incr(name, value, rate=rate)
        except OSError as exc:
            logger.warning(
                "metrics.backend_error",
                extra={"metric": name, "backend": self._backend, "error": type(exc).__name__},
            )

    def _connect_statsd(self, config: Settings) -> StatsClient | None:
        if StatsClient is None:
            logger.warning("metrics.statsd_missing", extra={"backend": self._backend})
            return None
        try:
            return StatsClient(
                host=config.metrics_statsd_host, port=config.metrics_statsd_port, prefix=""
            )
        except OSError as exc:
            logger.warning(
                "metrics.backend_error",
                extra={"metric": "statsd.init", "backend": self._backend, "error": str(exc)},
            )
            return None

    def _log_event(self, suffix: str, payload: dict[str, Any]) -> None:
        logger.info(f"{self._namespace}.{suffix}", extra={"metrics": payload})


metrics = MetricsReporter()
