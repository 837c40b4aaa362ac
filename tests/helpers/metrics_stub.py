from __future__ import annotations

from typing import Any


class StubMetrics:
    """Records every emitted metric, in order, for assertions."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def _record(self, kind: str, metric: str, value: float, tags, **extra: Any) -> None:
        self.calls.append(
            {"kind": kind, "metric": metric, "value": value, "tags": tags or {}, **extra}
        )

    def _of_kind(self, kind: str) -> list[dict[str, Any]]:
        return [
            {key: value for key, value in call.items() if key != "kind"}
            for call in self.calls
            if call["kind"] == kind
        ]

    @property
    def timing_calls(self) -> list[dict[str, Any]]:
        return self._of_kind("timing")

    @property
    def increment_calls(self) -> list[dict[str, Any]]:
        return self._of_kind("counter")

    @property
    def gauge_calls(self) -> list[dict[str, Any]]:
        return self._of_kind("gauge")

    @property
    def alert_calls(self) -> list[dict[str, Any]]:
        return self._of_kind("alert")

    def named(self, metric: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["metric"] == metric]

    def timing(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._record("timing", metric, value, tags)

    def increment(
        self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None
    ) -> None:
        self._record("counter", metric, value, tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._record("gauge", metric, value, tags)

    def alert(
        self,
        metric: str,
        *,
        value: float,
        threshold: float,
        severity: str,
        tags: dict[str, Any] | None = None,
    ) -> None:
        self._record("alert", metric, value, tags, threshold=threshold, severity=severity)
