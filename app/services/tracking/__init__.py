from __future__ import annotations

from .types import TrackingResult

__all__ = ["TrackingResult"]
