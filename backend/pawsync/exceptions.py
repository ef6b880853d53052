# backend/pawsync/exceptions.py
"""
Pipeline exceptions.

Per-pet failures (capture, conversion, store) are raised by the component that
detects them and caught at the orchestrator boundary, where they become a
result record. Setup failures (CaptureSetupError, StoreUnavailableError)
propagate and fail the whole batch or job.
"""

from typing import Any, Dict, Optional


class PawsyncError(Exception):
    """Base exception carrying the failing operation and structured details."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}

    def __str__(self):
        if self.operation:
            return f"{self.operation}: {super().__str__()}"
        return super().__str__()


# Capture


class CaptureError(PawsyncError):
    """Capture of a source page failed."""

    retryable = True


class NavigationError(CaptureError):
    """Source page unreachable or timed out. Retryable and skippable."""


class NoImageFound(CaptureError):
    """No selector matched and the fallback capture failed too."""

    retryable = False


class CaptureSetupError(PawsyncError):
    """The capture mechanism could not be acquired at all (browser launch)."""


# Conversion


class ConversionError(PawsyncError):
    """Conversion could not produce valid output. Never retried."""


class UnsupportedFormat(ConversionError):
    """Source bytes are animated or not a raster format the resizer supports."""


# Stores


class StoreWriteError(PawsyncError):
    """Object-store write failed."""


class StoreUnavailableError(PawsyncError):
    """Object store cannot be reached at all."""


class StatusWriteError(PawsyncError):
    """Status row write failed. Non-fatal after a successful store write."""


# Jobs and dispatch


class InvalidJobTransition(PawsyncError):
    """A sync job was asked to move backwards or out of a terminal state."""


class DispatchError(PawsyncError):
    """The external workflow runner rejected or never received a trigger."""
