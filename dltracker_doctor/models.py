"""Data models for problem records and commit results."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

PACKAGE_TYPES = ("semver", "tag", "git", "url")

HANDLED_ERRORS = frozenset(
    {
        "EACCES",
        "EFNOTREG",
        "EFZEROLEN",
        "ENODATA",
        "ENOENT",
        "ENOTDIR",
        "EORPHANREF",
        "EPERM",
    }
)

# Key path into the store document, e.g. ("semver", "foo", "1.0.0")
KeyPath = tuple[str, ...]


@dataclass(frozen=True)
class ProblemError:
    code: str
    message: str = ""


@dataclass(frozen=True)
class Problem:
    """A package record paired with the error the auditor found for it."""

    error: ProblemError
    data: Mapping[str, Any]

    @property
    def pkg_type(self) -> str | None:
        return self.data.get("type")


@dataclass
class ProblemRecord:
    """Engine-owned session entry. Only ``resolved`` ever changes."""

    data: dict[str, Any]
    error: ProblemError
    resolved: bool = False

    def to_problem(self) -> Problem:
        # Records are flat, so a shallow copy detaches the caller completely.
        return Problem(error=self.error, data=MappingProxyType(dict(self.data)))


@dataclass
class RemovalResult:
    """Outcome of the cascading removal for one resolved record."""

    index: int
    record: dict[str, Any]
    status: str  # "removed" | "absent"
    missing_key: KeyPath | None = None
    cascaded: list[KeyPath] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "removed"

    def describe(self) -> str:
        key = "/".join(str(part) for part in self.missing_key or ()) or "<none>"
        return f"record #{self.index} ({self.record.get('type', '?')}): missing key {key}"


@dataclass
class CommitReport:
    """Result of a successful ``save_state``."""

    path: Path
    doctored: str
    results: list[RemovalResult] = field(default_factory=list)

    @property
    def removed(self) -> list[RemovalResult]:
        return [r for r in self.results if r.ok]

    @property
    def absent(self) -> list[RemovalResult]:
        return [r for r in self.results if not r.ok]
