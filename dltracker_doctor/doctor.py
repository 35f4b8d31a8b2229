"""Doctor — session over one audit of a download tracker store.

The session holds the auditor's findings in a fixed order; a finding's
position is its handle for every query and mutation. Resolving a finding only
flags it. Nothing touches the store until :meth:`Doctor.save_state`, which
re-reads the live file and cascades the resolved records out of it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Protocol, Sequence, runtime_checkable

import structlog

from dltracker_doctor.auditor import Auditor, TrackerAuditor
from dltracker_doctor.models import HANDLED_ERRORS, CommitReport, Problem, ProblemRecord
from dltracker_doctor.reconcile import apply_removals
from dltracker_doctor.store import doctored_timestamp, load_store, save_store, store_path

log = structlog.get_logger("dltracker_doctor.doctor")

ORPHAN_REF_TYPES = frozenset({"tag", "git"})


@runtime_checkable
class DoctorProtocol(Protocol):
    """Operations the reporter and CLI rely on."""

    def data(self) -> tuple[Problem, ...]: ...

    def problem(self, index: int) -> Problem: ...

    def by_type_and_code(self, pkg_type: str, code: str) -> list[int]: ...

    def unhandled(self, semver: bool) -> list[int]: ...

    def orphaned_refs(self, pkg_type: str) -> list[int]: ...

    def mark_resolved(self, indices: Iterable[int]) -> None: ...

    async def save_state(self) -> CommitReport: ...

    def is_changed(self) -> bool: ...


class SnapshotCache:
    """Lazily computed read-only view of the unresolved records."""

    def __init__(self) -> None:
        self._value: tuple[Problem, ...] | None = None

    @property
    def valid(self) -> bool:
        return self._value is not None

    def get(self, records: Sequence[ProblemRecord]) -> tuple[Problem, ...]:
        if self._value is None:
            self._value = tuple(r.to_problem() for r in records if not r.resolved)
        return self._value

    def invalidate(self) -> None:
        self._value = None


class Doctor:
    """Reconciliation engine for one audit session."""

    def __init__(
        self,
        where: str | os.PathLike[str],
        problems: Iterable[Problem],
        *,
        strict: bool = False,
    ) -> None:
        self.where = Path(where)
        self.strict = strict
        self._records: tuple[ProblemRecord, ...] = tuple(
            ProblemRecord(data=dict(p.data), error=p.error) for p in problems
        )
        self._cache = SnapshotCache()
        self._changed = False

    @classmethod
    async def create(
        cls,
        where: str | os.PathLike[str] | None = None,
        *,
        auditor: Auditor | None = None,
        strict: bool = False,
    ) -> Doctor:
        """Audit *where* once and return a doctor over the findings.

        ``OSError`` from the auditor (missing, unreadable or non-directory
        location) propagates unchanged.
        """
        if where is None:
            where = os.getcwd()
        elif not isinstance(where, (str, os.PathLike)):
            raise TypeError("path must be given as a string")
        if auditor is None:
            auditor = TrackerAuditor(where)

        problems = await auditor.audit()
        log.info("doctor.audited", where=str(where), problems=len(problems))
        return cls(where, problems, strict=strict)

    @property
    def path(self) -> Path:
        return store_path(self.where)

    def __len__(self) -> int:
        return len(self._records)

    # ── Snapshot cache ──

    def data(self) -> tuple[Problem, ...]:
        """Unresolved findings as read-only copies, in session order."""
        return self._cache.get(self._records)

    def problem(self, index: int) -> Problem:
        """Read-only copy of the finding at session *index*, resolved or not."""
        return self._records[self._check_index(index)].to_problem()

    # ── Query layer ──

    def by_type_and_code(self, pkg_type: str, code: str) -> list[int]:
        return [
            i
            for i, r in enumerate(self._records)
            if not r.resolved and r.data.get("type") == pkg_type and r.error.code == code
        ]

    def unhandled(self, semver: bool) -> list[int]:
        """Findings with an error code outside ``HANDLED_ERRORS``.

        *semver* selects registry packages when true, every other type when false.
        """
        return [
            i
            for i, r in enumerate(self._records)
            if not r.resolved
            and (r.data.get("type") == "semver") == semver
            and r.error.code not in HANDLED_ERRORS
        ]

    def orphaned_refs(self, pkg_type: str) -> list[int]:
        if pkg_type not in ORPHAN_REF_TYPES:
            return []
        return self.by_type_and_code(pkg_type, "EORPHANREF")

    # ── Resolution tracker ──

    def mark_resolved(self, indices: Iterable[int]) -> None:
        """Flag the findings at *indices* for removal on the next commit.

        All indices are validated before any is applied. An empty input
        changes nothing.
        """
        checked = [self._check_index(i) for i in indices]
        if not checked:
            return
        newly = [i for i in checked if not self._records[i].resolved]
        for i in newly:
            self._records[i].resolved = True
        self._changed = True
        if newly:
            self._cache.invalidate()
        log.debug("doctor.marked_resolved", count=len(checked), new=len(newly))

    def is_changed(self) -> bool:
        return self._changed

    def resolved_indices(self) -> list[int]:
        return [i for i, r in enumerate(self._records) if r.resolved]

    # ── Persistence reconciler ──

    async def save_state(self) -> CommitReport:
        """Commit resolved findings to the live store.

        Raises ``OSError`` or :class:`StoreParseError` if the store cannot be
        read or parsed, and :class:`ReconciliationError` in strict mode when a
        resolved record's key is gone; in all those cases nothing is written
        and the session state is unchanged.
        """
        path = self.path
        doc = await load_store(path)

        results = apply_removals(
            doc,
            ((i, r.data) for i, r in enumerate(self._records) if r.resolved),
            strict=self.strict,
        )
        doctored = doctored_timestamp()
        doc["doctored"] = doctored

        await save_store(path, doc)

        self._changed = False
        self._cache.invalidate()
        report = CommitReport(path=path, doctored=doctored, results=results)
        log.info(
            "doctor.commit_written",
            path=str(path),
            removed=len(report.removed),
            absent=len(report.absent),
        )
        return report

    def _check_index(self, index: int) -> int:
        if isinstance(index, bool) or not isinstance(index, int):
            raise IndexError(f"record index must be an int, got {index!r}")
        if not 0 <= index < len(self._records):
            raise IndexError(f"record index {index} out of range (0..{len(self._records) - 1})")
        return index
