"""Text report of the problems found in a download tracker store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

import click

from dltracker_doctor.doctor import DoctorProtocol
from dltracker_doctor.models import Problem

RULE = "-" * 60
COMMIT_COLUMN_WIDTH = 40

Echo = Callable[[str], Any]


@dataclass(frozen=True)
class SemverWidths:
    name: int
    version: int
    filename: int


@dataclass(frozen=True)
class TagWidths:
    name: int
    tag: int


@dataclass(frozen=True)
class GitRefWidths:
    repo: int
    tag: int


def semver_widths(problems: Sequence[Problem]) -> SemverWidths:
    name = version = filename = 0
    for p in problems:
        d = p.data
        if d.get("type") != "semver":
            continue
        name = max(name, len(d.get("name") or ""))
        version = max(version, len(d.get("version") or ""))
        filename = max(filename, len(d.get("filename") or ""))
    return SemverWidths(
        name=max(name, len("Pkg_name")) + 3,
        version=max(version, len("Version")) + 3,
        filename=filename + 3,
    )


def tag_widths(problems: Sequence[Problem]) -> TagWidths:
    name = tag = 0
    for p in problems:
        d = p.data
        if d.get("type") != "tag":
            continue
        name = max(name, len(d.get("name") or ""))
        tag = max(tag, len(d.get("spec") or ""))
    return TagWidths(name=max(name, len("Pkg_name")) + 3, tag=tag + 3)


def git_ref_widths(problems: Sequence[Problem]) -> GitRefWidths:
    repo = tag = 0
    for p in problems:
        d = p.data
        # Legacy git records have no repo; refs without spec are commit entries
        if d.get("type") != "git" or "repo" not in d or "spec" not in d:
            continue
        repo = max(repo, len(d["repo"] or ""))
        tag = max(tag, len(d["spec"] or ""))
    return GitRefWidths(repo=repo + 3, tag=tag + 3)


def split_git_nodata(doctor: DoctorProtocol) -> tuple[list[int], list[int]]:
    """Split git ENODATA findings into commit records with no filename and refs with no commit."""
    commits: list[int] = []
    refs: list[int] = []
    for i in doctor.by_type_and_code("git", "ENODATA"):
        (refs if "spec" in doctor.problem(i).data else commits).append(i)
    return commits, refs


def _require_type(data: Mapping[str, Any], expected: str, negate: bool = False) -> None:
    if (data.get("type") == expected) == negate:
        qualifier = "is" if negate else "is not"
        raise ValueError(f"record type {data.get('type')!r} {qualifier} {expected!r}")


def format_semver(problem: Problem, widths: SemverWidths, with_code: bool = False) -> str:
    d = problem.data
    _require_type(d, "semver")
    return "".join(
        [
            (d.get("name") or "").ljust(widths.name),
            (d.get("version") or "").ljust(widths.version),
            (d.get("filename") or "").ljust(widths.filename),
            problem.error.code if with_code else "",
        ]
    )


def format_tag(data: Mapping[str, Any], widths: TagWidths) -> str:
    _require_type(data, "tag")
    return "".join(
        [
            (data.get("name") or "").ljust(widths.name),
            (data.get("spec") or "").ljust(widths.tag),
            data.get("version") or "",
        ]
    )


def format_git_ref(data: Mapping[str, Any], widths: GitRefWidths) -> str:
    _require_type(data, "git")
    return "".join(
        [
            (data.get("repo") or "").ljust(widths.repo),
            (data.get("spec") or "").ljust(widths.tag),
            data.get("commit") or "",
        ]
    )


def format_non_semver(data: Mapping[str, Any]) -> str:
    """Non-registry values are too long for columns; render them on two lines."""
    _require_type(data, "semver", negate=True)
    if data.get("type") == "git":
        if data.get("repo"):
            return f"{data['repo']}#{data.get('commit') or ''}:\n{data.get('filename') or ''}"
        if data.get("repoID"):
            return f"{data.get('cloneURL') or ''}#{data.get('treeish') or ''}:\n{data['repoID']}"
        return ""
    if data.get("type") == "url":
        return f"{data.get('spec') or ''}:\n{data.get('filename') or ''}"
    return ""


class Reporter:
    """Renders the current problem set of a doctor session."""

    def __init__(self, doctor: DoctorProtocol) -> None:
        if doctor is None:
            raise TypeError("No doctor given")
        if not isinstance(doctor, DoctorProtocol):
            raise TypeError(f"{type(doctor).__name__} is not a dltracker doctor")
        self.doctor = doctor
        problems = doctor.data()
        self.semver = semver_widths(problems)
        self.tag = tag_widths(problems)
        self.git_ref = git_ref_widths(problems)

    def report(self, echo: Echo = click.echo) -> int:
        """Print every problem section; return the number of problems listed."""
        echo("")
        echo(RULE)

        count = 0
        count += self._report_codes(echo, ["EACCES", "EPERM"], "PERMISSION DENIED")
        count += self._report_codes(echo, ["ENOENT"], "MISSING FILES")
        count += self._report_codes(echo, ["EFZEROLEN"], "ZERO-LENGTH FILES")
        count += self._report_codes(echo, ["EFNOTREG"], "NOT REGULAR FILES")
        count += self._report_git_not_dir(echo)
        # ENODATA here covers semver, url & git commit records
        count += self._report_codes(echo, ["ENODATA"], "NO FILENAME")
        count += self._report_no_version(echo)
        count += self._report_orphaned_refs(echo)
        count += self._report_unhandled(echo)

        if count < 1:
            echo("   NO MORE PROBLEMS FOUND")
            echo(RULE)
            echo("")
        return count

    # ── sections ──

    def _problems(self, indices: list[int]) -> list[Problem]:
        return [self.doctor.problem(i) for i in indices]

    def _semver_header(self, echo: Echo, title: str) -> None:
        echo(f"* {title} - from npm registry")
        echo(
            "Pkg_name".ljust(self.semver.name, "_")
            + "Version".ljust(self.semver.version, "_")
            + "Filename".ljust(self.semver.filename, "_")
        )

    def _other_header(self, echo: Echo, title: str) -> None:
        echo(f"* {title} - not from npm registry")
        echo(RULE)

    def _report_codes(self, echo: Echo, codes: list[str], title: str) -> int:
        count = 0
        semver = self._problems([i for c in codes for i in self.doctor.by_type_and_code("semver", c)])
        if semver:
            count += len(semver)
            self._semver_header(echo, title)
            for p in semver:
                echo(format_semver(p, self.semver))
            echo("")

        other: list[int] = []
        for c in codes:
            if c == "ENODATA":
                other += split_git_nodata(self.doctor)[0]
            else:
                other += self.doctor.by_type_and_code("git", c)
            other += self.doctor.by_type_and_code("url", c)
        if other:
            count += len(other)
            self._other_header(echo, title)
            for p in self._problems(other):
                echo(format_non_semver(p.data))
                echo("")
        return count

    def _report_git_not_dir(self, echo: Echo) -> int:
        problems = self._problems(self.doctor.by_type_and_code("git", "ENOTDIR"))
        if problems:
            echo("* NOT A DIRECTORY - GIT REPO EXPECTED")
            echo(RULE)
            for p in problems:
                echo(format_non_semver(p.data))
                echo("")
        return len(problems)

    def _report_no_version(self, echo: Echo) -> int:
        tags = self._problems(self.doctor.by_type_and_code("tag", "ENODATA"))
        if tags:
            echo("* TAG WITH NO VERSION - npm registry package")
            echo("Pkg_name".ljust(self.tag.name, "_") + "Tag".ljust(self.tag.tag, "_"))
            for p in tags:
                echo(format_tag(p.data, self.tag))
            echo("")

        refs = self._problems(split_git_nodata(self.doctor)[1])
        if refs:
            echo("* GIT REF WITH NO VERSION - git repo")
            echo("Repo".ljust(self.git_ref.repo, "_") + "Tag".ljust(self.git_ref.tag, "_"))
            for p in refs:
                echo(format_git_ref(p.data, self.git_ref))
            echo("")
        return len(tags) + len(refs)

    def _report_orphaned_refs(self, echo: Echo) -> int:
        tags = self._problems(self.doctor.orphaned_refs("tag"))
        if tags:
            echo("* ORPHANED TAG - npm registry package")
            echo(
                "Pkg_name".ljust(self.tag.name, "_")
                + "Tag".ljust(self.tag.tag, "_")
                + "Version".ljust(self.semver.version, "_")
            )
            for p in tags:
                echo(format_tag(p.data, self.tag))
            echo("")

        refs = self._problems(self.doctor.orphaned_refs("git"))
        if refs:
            echo("* ORPHANED TAG - git repo")
            echo(
                "Repo".ljust(self.git_ref.repo, "_")
                + "Tag".ljust(self.git_ref.tag, "_")
                + "Commit".ljust(COMMIT_COLUMN_WIDTH, "_")
            )
            for p in refs:
                echo(format_git_ref(p.data, self.git_ref))
            echo("")
        return len(tags) + len(refs)

    def _report_unhandled(self, echo: Echo) -> int:
        semver = self._problems(self.doctor.unhandled(True))
        if semver:
            self._semver_header(echo, "OTHER ERRORS")
            for p in semver:
                echo(format_semver(p, self.semver, with_code=True))
            echo("")

        other = self._problems(self.doctor.unhandled(False))
        if other:
            self._other_header(echo, "OTHER ERRORS")
            for p in other:
                echo(f"{format_non_semver(p.data)}\n{p.error.code}")
                echo("")
        return len(semver) + len(other)
