"""Tests for cascading removal of resolved records."""

from __future__ import annotations

import copy

import pytest

from dltracker_doctor.exceptions import ReconciliationError
from dltracker_doctor.reconcile import apply_removals

COMMIT = "abcdef0123456789abcdef0123456789abcdef01"
OTHER_COMMIT = "1234567890abcdef1234567890abcdef12345678"


def _semver(name: str, version: str) -> dict:
    return {"type": "semver", "name": name, "version": version, "filename": f"{name}-{version}.tgz"}


# ── semver ──


class TestSemver:
    def test_removes_version_keeps_siblings(self, sample_store):
        results = apply_removals(sample_store, [(0, _semver("foo", "1.1.0"))])
        assert results[0].ok
        assert "1.1.0" not in sample_store["semver"]["foo"]
        assert "1.0.0" in sample_store["semver"]["foo"]

    def test_cascades_to_tags_pointing_at_version(self, sample_store):
        results = apply_removals(sample_store, [(0, _semver("foo", "1.1.0"))])
        assert sample_store["tag"]["foo"] == {"legacy": {"version": "1.0.0"}}
        assert results[0].cascaded == [("tag", "foo", "latest")]

    def test_sole_version_removes_package_and_tags(self):
        doc = {
            "semver": {"foo": {"1.0.0": {"filename": "foo-1.0.0.tgz"}}},
            "tag": {"foo": {"latest": {"version": "1.0.0"}, "beta": {"version": "1.0.0"}}},
        }
        apply_removals(doc, [(0, _semver("foo", "1.0.0"))])
        assert doc == {}

    def test_other_buckets_survive(self, sample_store):
        apply_removals(sample_store, [(0, _semver("bar", "2.0.0"))])
        assert "bar" not in sample_store["semver"]
        assert set(sample_store) == {"semver", "tag", "git", "url", "created"}

    def test_tags_of_other_packages_untouched(self):
        doc = {
            "semver": {"foo": {"1.0.0": {}}, "bar": {"1.0.0": {}}},
            "tag": {"bar": {"latest": {"version": "1.0.0"}}},
        }
        apply_removals(doc, [(0, _semver("foo", "1.0.0"))])
        assert doc["tag"] == {"bar": {"latest": {"version": "1.0.0"}}}


# ── tag ──


class TestTag:
    def test_removes_tag(self, sample_store):
        apply_removals(sample_store, [(2, {"type": "tag", "name": "foo", "spec": "legacy"})])
        assert sample_store["tag"] == {"foo": {"latest": {"version": "1.1.0"}}}

    def test_last_tag_removes_name_and_bucket(self):
        doc = {"tag": {"foo": {"latest": {"version": "9.9.9"}}}, "url": {}}
        apply_removals(doc, [(0, {"type": "tag", "name": "foo", "spec": "latest"})])
        # Only buckets touched by a removal are pruned
        assert doc == {"url": {}}


# ── git ──


class TestGit:
    def test_ref_removal_leaves_commit(self, sample_store):
        repo = next(iter(sample_store["git"]))
        apply_removals(sample_store, [(0, {"type": "git", "repo": repo, "spec": "v1", "commit": COMMIT})])
        assert list(sample_store["git"][repo]) == [COMMIT]

    def test_commit_removal_cascades_to_refs(self):
        doc = {
            "git": {
                "repo1": {
                    COMMIT: {"filename": "a.tgz"},
                    OTHER_COMMIT: {"filename": "b.tgz"},
                    "v1": {"commit": COMMIT},
                    "main": {"commit": COMMIT},
                    "v2": {"commit": OTHER_COMMIT},
                }
            }
        }
        results = apply_removals(doc, [(3, {"type": "git", "repo": "repo1", "commit": COMMIT})])
        assert set(doc["git"]["repo1"]) == {OTHER_COMMIT, "v2"}
        assert sorted(results[0].cascaded) == [("git", "repo1", "main"), ("git", "repo1", "v1")]

    def test_commit_removal_drops_repo_and_bucket(self):
        doc = {"git": {"repo1": {"abcdef": {"filename": "a.tgz"}, "v1": {"commit": "abcdef"}}}}
        apply_removals(doc, [(0, {"type": "git", "repo": "repo1", "commit": "abcdef"})])
        assert doc == {}

    def test_other_repos_untouched(self):
        doc = {"git": {"repo1": {"abcdef": {}}, "repo2": {"v1": {"commit": "abcdef"}}}}
        apply_removals(doc, [(0, {"type": "git", "repo": "repo1", "commit": "abcdef"})])
        assert doc == {"git": {"repo2": {"v1": {"commit": "abcdef"}}}}


# ── url ──


class TestUrl:
    def test_removes_url_and_bucket(self, sample_store):
        spec = next(iter(sample_store["url"]))
        apply_removals(sample_store, [(0, {"type": "url", "spec": spec})])
        assert "url" not in sample_store


# ── drift ──


class TestAbsentKeys:
    @pytest.mark.parametrize(
        "record, missing",
        [
            (_semver("foo", "7.7.7"), ("semver", "foo", "7.7.7")),
            (_semver("nope", "1.0.0"), ("semver", "nope")),
            ({"type": "tag", "name": "foo", "spec": "nope"}, ("tag", "foo", "nope")),
            ({"type": "git", "repo": "elsewhere", "spec": "v1"}, ("git", "elsewhere")),
            ({"type": "git", "repoID": "legacy-id", "cloneURL": "x"}, ("git", "<no repo>")),
            ({"type": "url", "spec": "https://nope"}, ("url", "https://nope")),
            ({"type": "mystery"}, ("mystery",)),
        ],
    )
    def test_absent_key_reported_and_doc_untouched(self, sample_store, record, missing):
        before = copy.deepcopy(sample_store)
        results = apply_removals(sample_store, [(5, record)])
        assert sample_store == before
        assert results[0].status == "absent"
        assert results[0].missing_key == missing
        assert results[0].index == 5

    def test_absent_bucket(self):
        results = apply_removals({}, [(0, {"type": "url", "spec": "https://x"})])
        assert results[0].missing_key == ("url",)

    def test_remaining_records_still_applied(self, sample_store):
        results = apply_removals(
            sample_store,
            [
                (0, _semver("foo", "7.7.7")),
                (1, _semver("bar", "2.0.0")),
            ],
        )
        assert [r.status for r in results] == ["absent", "removed"]
        assert "bar" not in sample_store["semver"]

    def test_second_removal_of_same_key_is_absent(self, sample_store):
        record = {"type": "tag", "name": "foo", "spec": "latest"}
        results = apply_removals(sample_store, [(0, record), (1, record)])
        assert [r.status for r in results] == ["removed", "absent"]

    def test_strict_raises_on_first_absent(self, sample_store):
        with pytest.raises(ReconciliationError) as exc_info:
            apply_removals(
                sample_store,
                [(0, _semver("bar", "2.0.0")), (4, _semver("foo", "7.7.7"))],
                strict=True,
            )
        assert exc_info.value.result.index == 4
        assert "semver/foo/7.7.7" in str(exc_info.value)

    def test_result_record_is_a_copy(self, sample_store):
        record = {"type": "tag", "name": "foo", "spec": "latest"}
        results = apply_removals(sample_store, [(0, record)])
        results[0].record["name"] = "changed"
        assert record["name"] == "foo"

    def test_empty_bucket_pruned_when_record_absent(self):
        doc = {"url": {}, "semver": {"foo": {"1.0.0": {}}}}
        results = apply_removals(doc, [(0, {"type": "url", "spec": "https://gone"})])
        assert results[0].status == "absent"
        assert doc == {"semver": {"foo": {"1.0.0": {}}}}

    def test_strict_absent_leaves_empty_bucket(self):
        doc = {"tag": {}}
        with pytest.raises(ReconciliationError):
            apply_removals(doc, [(0, {"type": "tag", "name": "foo", "spec": "x"})], strict=True)
        assert doc == {"tag": {}}


def test_no_resolved_records_leaves_doc_alone(sample_store):
    doc = {**sample_store, "tag": {}}
    before = copy.deepcopy(doc)
    assert apply_removals(doc, []) == []
    assert doc == before
