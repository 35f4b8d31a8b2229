"""Custom exceptions for dltracker-doctor."""

from __future__ import annotations

from pathlib import Path

from dltracker_doctor.models import RemovalResult


class DoctorError(Exception):
    """Base exception for all doctor errors."""


class StoreParseError(DoctorError):
    """Raised when the store document is not valid JSON or has an unexpected shape."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot parse {self.path}: {reason}")


class ReconciliationError(DoctorError):
    """Raised in strict mode when a resolved record's key is absent from the live store."""

    def __init__(self, result: RemovalResult):
        self.result = result
        super().__init__(f"Store drifted from audit snapshot: {result.describe()}")
