"""Shared pytest fixtures for dltracker-doctor tests.

Stores are written into ``tmp_path`` download directories; archives are tiny
non-empty files unless a test makes them missing or empty.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any

import pytest

from dltracker_doctor.doctor import Doctor
from dltracker_doctor.models import Problem, ProblemError
from dltracker_doctor.store import MAPFILE_NAME

COMMIT = "abcdef0123456789abcdef0123456789abcdef01"
REPO = "github.com/org/repo1"
URL_SPEC = "https://example.com/baz-3.0.0.tgz"

_SAMPLE_STORE: dict[str, Any] = {
    "semver": {
        "foo": {
            "1.0.0": {"filename": "foo-1.0.0.tgz"},
            "1.1.0": {"filename": "foo-1.1.0.tgz"},
        },
        "bar": {"2.0.0": {"filename": "bar-2.0.0.tgz"}},
    },
    "tag": {
        "foo": {
            "latest": {"version": "1.1.0"},
            "legacy": {"version": "1.0.0"},
        },
    },
    "git": {
        REPO: {
            COMMIT: {"filename": "repo1-abcdef.tgz"},
            "v1": {"commit": COMMIT},
        },
    },
    "url": {URL_SPEC: {"filename": "baz-3.0.0.tgz"}},
    "created": "01/01/2024, 10:00:00 AM",
}


def _archive_names(doc: dict[str, Any]) -> list[str]:
    names = []
    for versions in (doc.get("semver") or {}).values():
        names += [e["filename"] for e in versions.values() if "filename" in e]
    for entries in (doc.get("git") or {}).values():
        names += [e["filename"] for e in entries.values() if "filename" in e]
    names += [e["filename"] for e in (doc.get("url") or {}).values() if "filename" in e]
    return names


def _problem(code: str, **data: Any) -> Problem:
    return Problem(error=ProblemError(code=code, message=f"{code} message"), data=data)


@pytest.fixture
def sample_store() -> dict[str, Any]:
    """A healthy store document with one entry of every kind."""
    return copy.deepcopy(_SAMPLE_STORE)


@pytest.fixture
def download_dir(tmp_path: Path, sample_store: dict[str, Any]) -> Path:
    """A download directory holding the sample store and all its archives."""
    where = tmp_path / "downloads"
    where.mkdir()
    (where / MAPFILE_NAME).write_text(json.dumps(sample_store), encoding="utf-8")
    for name in _archive_names(sample_store):
        (where / name).write_bytes(b"\x1f\x8b dummy tarball")
    return where


@pytest.fixture
def sample_problems() -> list[Problem]:
    """One finding of each kind the doctor classifies, in a fixed order.

    Index map:
        0 semver ENOENT       foo@1.0.0
        1 semver EFZEROLEN    bar@2.0.0
        2 tag    EORPHANREF   foo legacy
        3 tag    ENODATA      foo next
        4 git    EORPHANREF   repo1 v0
        5 git    ENOENT       repo1 <COMMIT>
        6 url    ENODATA      baz
        7 semver EIO          qux@0.1.0   (unhandled)
        8 url    ELOOP        loop        (unhandled)
    """
    return [
        _problem("ENOENT", type="semver", name="foo", version="1.0.0", filename="foo-1.0.0.tgz"),
        _problem("EFZEROLEN", type="semver", name="bar", version="2.0.0", filename="bar-2.0.0.tgz"),
        _problem("EORPHANREF", type="tag", name="foo", spec="legacy", version="0.9.0"),
        _problem("ENODATA", type="tag", name="foo", spec="next"),
        _problem("EORPHANREF", type="git", repo=REPO, spec="v0", commit="0" * 40),
        _problem("ENOENT", type="git", repo=REPO, commit=COMMIT, filename="repo1-abcdef.tgz"),
        _problem("ENODATA", type="url", spec=URL_SPEC),
        _problem("EIO", type="semver", name="qux", version="0.1.0", filename="qux-0.1.0.tgz"),
        _problem("ELOOP", type="url", spec="https://example.com/loop.tgz", filename="loop.tgz"),
    ]


@pytest.fixture
def doctor(download_dir: Path, sample_problems: list[Problem]) -> Doctor:
    return Doctor(download_dir, sample_problems)
