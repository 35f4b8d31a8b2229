"""Persisted store I/O — read, validate and rewrite ``dltracker.json``."""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from dltracker_doctor.exceptions import StoreParseError

log = structlog.get_logger("dltracker_doctor.store")

MAPFILE_NAME = "dltracker.json"
DOCTORED_FORMAT = "%m/%d/%Y, %I:%M:%S %p"

_BOM = "\ufeff"

_Nested = dict[str, dict[str, dict[str, Any]]]


class StoreDocument(BaseModel):
    """Expected shape of the store. Used for validation only; the raw dict is what gets edited."""

    model_config = ConfigDict(extra="allow")

    semver: _Nested | None = None
    tag: _Nested | None = None
    git: _Nested | None = None
    url: dict[str, dict[str, Any]] | None = None
    doctored: str | None = None


def store_path(where: str | os.PathLike[str]) -> Path:
    """Return the map file path inside the download directory *where*."""
    return Path(where) / MAPFILE_NAME


def doctored_timestamp(now: datetime | None = None) -> str:
    """Human-readable local timestamp stamped into ``doctored`` on commit."""
    return (now or datetime.now()).strftime(DOCTORED_FORMAT)


def parse_store(text: str, path: Path | str = MAPFILE_NAME) -> dict[str, Any]:
    """Parse store text, tolerating a leading byte-order mark.

    Raises :class:`StoreParseError` on malformed JSON or an unexpected shape.
    """
    if text.startswith(_BOM):
        text = text[1:]
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise StoreParseError(path, f"invalid JSON: {e}") from e
    try:
        StoreDocument.model_validate(raw)
    except ValidationError as e:
        messages = []
        for err in e.errors():
            loc = " → ".join(str(part) for part in err["loc"])
            messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
        raise StoreParseError(path, "; ".join(messages)) from e
    return raw


def read_store(path: Path) -> dict[str, Any]:
    """Read and parse the store at *path*. ``OSError`` propagates unchanged.

    Bytes that are not UTF-8 raise :class:`StoreParseError` like any other
    unreadable content.
    """
    raw = path.read_bytes()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise StoreParseError(path, f"invalid UTF-8: {e}") from e
    return parse_store(text, path)


def write_store(path: Path, doc: dict[str, Any]) -> None:
    """Replace the store at *path* with *doc* in one operation.

    The document is written to a sibling temp file first, then moved over the
    original, so a reader sees either the old or the new full contents.
    """
    payload = json.dumps(doc, ensure_ascii=False, separators=(",", ":"))
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        # mkstemp creates 0600; keep whatever mode the existing store has
        if path.exists():
            shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            log.debug("store.tmp_cleanup_failed", tmp=tmp_name)
        raise
    log.debug("store.written", path=str(path), size=len(payload))


async def load_store(path: Path) -> dict[str, Any]:
    return await asyncio.to_thread(read_store, path)


async def save_store(path: Path, doc: dict[str, Any]) -> None:
    await asyncio.to_thread(write_store, path, doc)
