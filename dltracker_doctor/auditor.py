"""Auditor boundary and the default filesystem auditor.

The doctor only ever calls :meth:`Auditor.audit` once per session. The
:class:`TrackerAuditor` here inspects a download directory the way the
download tracker does: it checks each record in ``dltracker.json`` against the
archive files beside it.
"""

from __future__ import annotations

import asyncio
import errno
import os
import re
import stat
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog

from dltracker_doctor.models import Problem, ProblemError
from dltracker_doctor.store import read_store, store_path

log = structlog.get_logger("dltracker_doctor.auditor")

_COMMIT_RE = re.compile(r"^[0-9a-f]{7,40}$")


@runtime_checkable
class Auditor(Protocol):
    """Interface that every auditor must satisfy."""

    async def audit(self) -> list[Problem]: ...


def _problem(code: str, message: str, data: dict[str, Any]) -> Problem:
    return Problem(error=ProblemError(code=code, message=message), data=data)


def check_location(where: Path) -> None:
    """Raise the matching ``OSError`` if *where* is not a readable directory."""
    if not where.exists():
        raise FileNotFoundError(errno.ENOENT, "No such file or directory", str(where))
    if not where.is_dir():
        raise NotADirectoryError(errno.ENOTDIR, "Not a directory", str(where))
    if not os.access(where, os.R_OK | os.X_OK):
        raise PermissionError(errno.EACCES, "Permission denied", str(where))


class TrackerAuditor:
    """Audit a download directory and its ``dltracker.json``."""

    def __init__(self, where: str | os.PathLike[str]) -> None:
        self.where = Path(where)

    async def audit(self) -> list[Problem]:
        return await asyncio.to_thread(self.audit_sync)

    def audit_sync(self) -> list[Problem]:
        check_location(self.where)
        map_file = store_path(self.where)
        if not map_file.exists():
            log.info("auditor.no_map_file", where=str(self.where))
            return []
        doc = read_store(map_file)

        problems: list[Problem] = []
        problems.extend(self._audit_semver(doc))
        problems.extend(self._audit_tags(doc))
        problems.extend(self._audit_git(doc))
        problems.extend(self._audit_url(doc))
        log.info("auditor.done", where=str(self.where), problems=len(problems))
        return problems

    # ── archive checks ──

    def _check_file(self, data: dict[str, Any]) -> Problem | None:
        filename = data.get("filename")
        if not filename:
            return _problem("ENODATA", "No filename in record", data)
        path = self.where / filename
        try:
            st = path.stat()
        except OSError as e:
            code = errno.errorcode.get(e.errno or 0, "EIO")
            return _problem(code, e.strerror or str(e), data)
        if not stat.S_ISREG(st.st_mode):
            return _problem("EFNOTREG", f"Not a regular file: {filename}", data)
        if st.st_size == 0:
            return _problem("EFZEROLEN", f"Zero-length file: {filename}", data)
        return None

    def _check_legacy_repo(self, data: dict[str, Any]) -> Problem | None:
        path = self.where / data["repoID"]
        if not path.exists():
            return _problem("ENOENT", f"Git repo directory not found: {data['repoID']}", data)
        if not path.is_dir():
            return _problem("ENOTDIR", f"Git repo is not a directory: {data['repoID']}", data)
        return None

    # ── per-bucket audits ──

    def _audit_semver(self, doc: dict[str, Any]) -> list[Problem]:
        problems = []
        for name, versions in (doc.get("semver") or {}).items():
            for version, entry in versions.items():
                data = {**_extra(entry), "type": "semver", "name": name, "version": version}
                problem = self._check_file(data)
                if problem:
                    problems.append(problem)
        return problems

    def _audit_tags(self, doc: dict[str, Any]) -> list[Problem]:
        semver = doc.get("semver") or {}
        problems = []
        for name, tags in (doc.get("tag") or {}).items():
            for spec, entry in tags.items():
                data = {**_extra(entry), "type": "tag", "name": name, "spec": spec}
                version = entry.get("version")
                if not version:
                    problems.append(_problem("ENODATA", "Tag record has no version", data))
                elif version not in semver.get(name, {}):
                    problems.append(
                        _problem("EORPHANREF", f"Tag points at missing version {version}", data)
                    )
        return problems

    def _audit_git(self, doc: dict[str, Any]) -> list[Problem]:
        problems = []
        for repo, entries in (doc.get("git") or {}).items():
            for key, entry in entries.items():
                if entry.get("commit"):
                    data = {**_extra(entry), "type": "git", "repo": repo, "spec": key}
                    target = entries.get(entry["commit"])
                    if target is None or target.get("commit"):
                        problems.append(
                            _problem(
                                "EORPHANREF",
                                f"Ref points at missing commit {entry['commit']}",
                                data,
                            )
                        )
                elif _COMMIT_RE.match(key):
                    data = {**_extra(entry), "type": "git", "repo": repo, "commit": key}
                    if "repoID" in entry:
                        problem = self._check_legacy_repo(data)
                    else:
                        problem = self._check_file(data)
                    if problem:
                        problems.append(problem)
                else:
                    data = {**_extra(entry), "type": "git", "repo": repo, "spec": key}
                    problems.append(_problem("ENODATA", "Git ref record has no commit", data))
        return problems

    def _audit_url(self, doc: dict[str, Any]) -> list[Problem]:
        problems = []
        for spec, entry in (doc.get("url") or {}).items():
            data = {**_extra(entry), "type": "url", "spec": spec}
            problem = self._check_file(data)
            if problem:
                problems.append(problem)
        return problems


def _extra(entry: dict[str, Any]) -> dict[str, Any]:
    """Scalar fields of a store entry. Callers lay identity fields over these."""
    return {k: v for k, v in entry.items() if not isinstance(v, (dict, list))}
