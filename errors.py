"""Exception types shared by the quota monitor."""

from dataclasses import dataclass
from pathlib import Path


class QuotaMonitorError(Exception):
    """Base class for monitor errors."""


class SourceError(QuotaMonitorError):
    """Quota data could not be fetched or was malformed.

    Covers authentication failures, network failures and unexpected
    upstream payloads. Fatal for one cycle, never for the process.
    """

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class StateCorruptionError(QuotaMonitorError):
    """Persisted alert state could not be parsed."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Alert state at {path} is unreadable: {reason}")


@dataclass
class DeliveryFailure:
    """One destination that rejected or never received a payload."""
    destination: str
    reason: str


class DeliveryError(QuotaMonitorError):
    """Every webhook destination failed for a payload."""

    def __init__(self, failures: list[DeliveryFailure]):
        self.failures = failures
        summary = "; ".join(f"{f.destination}: {f.reason}" for f in failures)
        super().__init__(f"All {len(failures)} destination(s) failed: {summary}")


class ConfigurationError(QuotaMonitorError):
    """The monitor cannot proceed with the current configuration."""
