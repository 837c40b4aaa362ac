"""Error classes raised by the discovery runner, intent resolver and stores."""

from __future__ import annotations


class DiscoveryError(RuntimeError):
    """Base exception for discovery orchestration failures."""

    def __init__(self, message: str, code: str = "DISCOVERY_ERROR") -> None:
        super().__init__(message)
        self.code = code


class DiscoveryDisabledError(DiscoveryError):
    """Raised when a run is requested while the kill switch is off."""

    def __init__(self, message: str = "Discovery runner is disabled") -> None:
        super().__init__(message, code="403_RUNNER_DISABLED")


class IntentNotFoundError(DiscoveryError):
    def __init__(self, intent_id: str) -> None:
        super().__init__(f"Unknown discovery intent: {intent_id}", code="404_INTENT_NOT_FOUND")
        self.intent_id = intent_id


class IntentInactiveError(DiscoveryError):
    def __init__(self, intent_id: str) -> None:
        super().__init__(f"Discovery intent is inactive: {intent_id}", code="409_INTENT_INACTIVE")
        self.intent_id = intent_id


class RunNotFoundError(DiscoveryError):
    def __init__(self, run_id: str) -> None:
        super().__init__(f"Discovery run not found: {run_id}", code="404_RUN_NOT_FOUND")
        self.run_id = run_id


class RunStateError(DiscoveryError):
    """Raised when a run status change would move backwards or leave a terminal state."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="409_INVALID_RUN_TRANSITION")


class RunNotCancellableError(DiscoveryError):
    """Raised when a run has already finished or already has a cancel request."""

    def __init__(self, run_id: str, message: str) -> None:
        super().__init__(message, code="400_RUN_NOT_CANCELLABLE")
        self.run_id = run_id


class DiscoveryPersistenceError(DiscoveryError):
    """Raised when a run record cannot be read or written."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="500_PERSISTENCE")


_HTTP_STATUS_BY_PREFIX = {"400": 400, "403": 403, "404": 404, "409": 409}


def http_status_for(code: str) -> int:
    """Map an error code such as ``404_INTENT_NOT_FOUND`` onto its HTTP status."""
    prefix, _, _ = code.partition("_")
    return _HTTP_STATUS_BY_PREFIX.get(prefix, 500)
