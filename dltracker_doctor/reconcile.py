"""Cascading removal of resolved records from a freshly read store document.

Each remover checks that the record's target key exists before touching the
document, so a record whose key is absent leaves the document unchanged.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

import structlog

from dltracker_doctor.exceptions import ReconciliationError
from dltracker_doctor.models import PACKAGE_TYPES, KeyPath, RemovalResult

log = structlog.get_logger("dltracker_doctor.reconcile")


class _KeyAbsent(Exception):
    def __init__(self, key: KeyPath):
        self.key = key
        super().__init__("/".join(key))


def _field(item: dict[str, Any], bucket: str, name: str) -> str:
    value = item.get(name)
    if value is None:
        raise _KeyAbsent((bucket, f"<no {name}>"))
    return value


def _require(doc: dict[str, Any], *path: str) -> dict[str, Any]:
    node: Any = doc
    walked: list[str] = []
    for part in path:
        walked.append(part)
        if not isinstance(node, dict) or part not in node:
            raise _KeyAbsent(tuple(walked))
        node = node[part]
    return node


def remove_semver(item: dict[str, Any], doc: dict[str, Any]) -> list[KeyPath]:
    """Remove a version entry, then any tags of that package pointing at it."""
    name = _field(item, "semver", "name")
    version = _field(item, "semver", "version")
    versions = _require(doc, "semver", name)
    if version not in versions:
        raise _KeyAbsent(("semver", name, version))

    del versions[version]
    if not versions:
        del doc["semver"][name]

    cascaded: list[KeyPath] = []
    pkg_tags = (doc.get("tag") or {}).get(name)
    if pkg_tags is not None:
        for spec in [s for s, entry in pkg_tags.items() if entry.get("version") == version]:
            del pkg_tags[spec]
            cascaded.append(("tag", name, spec))
        if not pkg_tags:
            del doc["tag"][name]
    return cascaded


def remove_tag(item: dict[str, Any], doc: dict[str, Any]) -> list[KeyPath]:
    name = _field(item, "tag", "name")
    spec = _field(item, "tag", "spec")
    pkg_tags = _require(doc, "tag", name)
    if spec not in pkg_tags:
        raise _KeyAbsent(("tag", name, spec))

    del pkg_tags[spec]
    if not pkg_tags:
        del doc["tag"][name]
    return []


def remove_git(item: dict[str, Any], doc: dict[str, Any]) -> list[KeyPath]:
    """Remove a git ref, or a commit together with every ref that targets it."""
    repo = _field(item, "git", "repo")
    entries = _require(doc, "git", repo)
    cascaded: list[KeyPath] = []

    if "spec" in item:
        spec = item["spec"]
        if spec not in entries:
            raise _KeyAbsent(("git", repo, str(spec)))
        del entries[spec]
    else:
        commit = _field(item, "git", "commit")
        if commit not in entries:
            raise _KeyAbsent(("git", repo, commit))
        del entries[commit]
        for ref in [r for r, entry in entries.items() if entry.get("commit") == commit]:
            del entries[ref]
            cascaded.append(("git", repo, ref))

    if not entries:
        del doc["git"][repo]
    return cascaded


def remove_url(item: dict[str, Any], doc: dict[str, Any]) -> list[KeyPath]:
    spec = _field(item, "url", "spec")
    urls = _require(doc, "url")
    if spec not in urls:
        raise _KeyAbsent(("url", spec))
    del urls[spec]
    return []


REMOVERS: dict[str, Callable[[dict[str, Any], dict[str, Any]], list[KeyPath]]] = {
    "semver": remove_semver,
    "tag": remove_tag,
    "git": remove_git,
    "url": remove_url,
}


def apply_removals(
    doc: dict[str, Any],
    resolved: Iterable[tuple[int, dict[str, Any]]],
    *,
    strict: bool = False,
) -> list[RemovalResult]:
    """Cascade every ``(index, record)`` in *resolved* out of *doc*, in order.

    A record whose key is absent is reported as ``status="absent"`` and the
    rest are still applied. Every bucket named by a resolved record, or reached
    by a cascade, is dropped from *doc* if it ends up empty. With *strict*, the first absent key raises
    :class:`ReconciliationError` instead.
    """
    results: list[RemovalResult] = []
    touched: set[str] = set()

    for index, item in resolved:
        pkg_type = item.get("type")
        remover = REMOVERS.get(pkg_type)  # type: ignore[arg-type]
        try:
            if remover is None:
                raise _KeyAbsent((str(pkg_type),))
            cascaded = remover(item, doc)
        except _KeyAbsent as e:
            result = RemovalResult(
                index=index, record=dict(item), status="absent", missing_key=e.key
            )
            log.warning("reconcile.key_absent", index=index, type=pkg_type, key=list(e.key))
            if strict:
                raise ReconciliationError(result) from None
            results.append(result)
            touched.add(str(pkg_type))
            continue

        touched.add(pkg_type)
        touched.update(path[0] for path in cascaded)
        results.append(
            RemovalResult(index=index, record=dict(item), status="removed", cascaded=cascaded)
        )
        log.debug("reconcile.removed", index=index, type=pkg_type, cascaded=len(cascaded))

    for bucket in PACKAGE_TYPES:
        if bucket in touched and bucket in doc and not doc[bucket]:
            del doc[bucket]
    return results
