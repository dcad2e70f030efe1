from __future__ import annotations

from dataclasses import dataclass

TRACKING_OK = "ok"
TRACKING_SKIPPED = "skipped"
TRACKING_FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TrackingResult:
    status: str
    error: str | None = None
    event_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status != TRACKING_FAILED

    @classmethod
    def ok(cls, *, event_id: str | None = None) -> TrackingResult:
        return cls(status=TRACKING_OK, event_id=event_id)

    @classmethod
    def skipped(cls, reason: str) -> TrackingResult:
        return cls(status=TRACKING_SKIPPED, error=reason)

    @classmethod
    def failed(cls, error: str) -> TrackingResult:
        return cls(status=TRACKING_FAILED, error=error)
