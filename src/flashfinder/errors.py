from __future__ import annotations


class FlashFinderError(Exception):
    """Base class for errors raised by flashfinder."""


class ConfigurationError(FlashFinderError, ValueError):
    """
    Invalid configuration (non-positive thresholds, windows, calibration
    constants, unknown algorithm names). Raised before any frame is processed.
    """


class ConsistencyViolation(FlashFinderError, RuntimeError):
    """
    Internal invariant failure while turning hit clusters into flashes
    (empty cluster, zero accumulated PE, cluster spanning several frames).
    Indicates a clustering bug rather than bad input; the frame is aborted.
    """

    def __init__(self, message: str, frame: int | None = None):
        self.frame = frame
        if frame is not None:
            message = f"frame {frame}: {message}"
        super().__init__(message)
