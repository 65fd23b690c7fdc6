"""End-to-end audit and CLI coverage over real on-disk OCFL objects."""

import json
import shutil

import pytest

from audit import PortalAudit
from config import AuditConfig
from conftest import make_crate, write_object
from errors import RepositoryNotInitializedError
from fetch import RemoteFetcher
from portal_check import main, parse_args, UsageError
from report import (
    CATALOG_NOT_FOUND,
    FETCH_COMPLETE,
    FETCH_SKIPPED,
    FILE_DRIFT_DETECTED,
    FILE_RESOLVED,
    FILE_UNRESOLVED,
    FIXITY_MISMATCH,
    FIXITY_OK,
    IDENTIFIER_NOT_FOUND,
    OBJECT_FAILED,
    OBJECT_LOADED,
    REMOTE_FETCH_FAILURE,
    CollectingReporter,
)


PORTAL = "https://portal.test/stream"


@pytest.fixture
def populated_root(ocfl_root):
    """
    consistent: catalog + data at head, identifier "ds-1"
    drifted:    catalog at head references old.csv, removed after v1
    missing:    catalog references ghost.csv, never stored
    bare:       no catalog at all
    """
    write_object(
        ocfl_root,
        "consistent",
        [
            {
                "ro-crate-metadata.json": make_crate(["data.csv", "image.tif"], identifier="ds-1"),
                "data.csv": b"a,b\n1,2\n",
                "image.tif": b"TIFF",
            }
        ],
    )
    write_object(
        ocfl_root,
        "drifted",
        [
            {"ro-crate-metadata.json": make_crate([]), "old.csv": b"old"},
            {"ro-crate-metadata.json": make_crate(["old.csv"], identifier="ds-2")},
        ],
    )
    write_object(
        ocfl_root,
        "missing",
        [{"ro-crate-metadata.json": make_crate(["ghost.csv"])}],
    )
    write_object(ocfl_root, "bare", [{"data.csv": b"x"}])
    return ocfl_root


def _audit(root, tmp_path, client=None, **settings):
    settings.setdefault("check_workers", 2)
    settings.setdefault("fetch_workers", 2)
    config = AuditConfig(repo_root=str(root), **settings)
    fetcher = None
    if client is not None:
        fetcher = RemoteFetcher(config.portal_url, tmp_path / "scratch", client=client)
    reporter = CollectingReporter()
    return PortalAudit(config, reporter, fetcher=fetcher), reporter


def test_local_audit_classifies_every_object(populated_root, tmp_path):
    audit, reporter = _audit(populated_root, tmp_path)

    summary = audit.run()

    assert not summary.passed()
    assert summary.count(CATALOG_NOT_FOUND) == 1
    assert summary.count(FILE_RESOLVED) == 2
    assert [f.file_id for f in reporter.of_kind(FILE_DRIFT_DETECTED)] == ["old.csv"]
    assert [f.object_path for f in reporter.of_kind(FILE_UNRESOLVED)] == ["missing"]
    # "missing" has no identifier and falls back to its store path
    assert [f.object_path for f in reporter.of_kind(IDENTIFIER_NOT_FOUND)] == ["missing"]
    assert summary.count(FETCH_COMPLETE) == 0


def test_fetch_and_fixity(populated_root, tmp_path, portal_client, portal_files):
    portal_files["/stream/ds-1/data.csv"] = b"a,b\n1,2\n"
    portal_files["/stream/ds-1/image.tif"] = b"TIFX"

    audit, reporter = _audit(
        populated_root, tmp_path, client=portal_client, portal_url=PORTAL, fixity=True
    )
    summary = audit.run()

    assert summary.count(FETCH_COMPLETE) == 2
    assert [f.file_id for f in reporter.of_kind(FIXITY_OK)] == ["data.csv"]
    mismatch = reporter.of_kind(FIXITY_MISMATCH)
    assert [f.file_id for f in mismatch] == ["image.tif"]
    assert mismatch[0].detail["expected"] != mismatch[0].detail["observed"]
    # Successful downloads are cleaned up after verification
    assert list((tmp_path / "scratch").iterdir()) == []


def test_drifted_files_are_not_fetched(populated_root, tmp_path, portal_client, portal_requests):
    audit, _ = _audit(populated_root, tmp_path, client=portal_client, portal_url=PORTAL)
    audit.run()

    assert sorted(portal_requests) == ["/stream/ds-1/data.csv", "/stream/ds-1/image.tif"]


def test_fetch_failure_skips_fixity(populated_root, tmp_path, portal_client, portal_files):
    portal_files["/stream/ds-1/data.csv"] = b"a,b\n1,2\n"

    audit, reporter = _audit(
        populated_root, tmp_path, client=portal_client, portal_url=PORTAL, fixity=True
    )
    summary = audit.run()

    failures = reporter.of_kind(REMOTE_FETCH_FAILURE)
    assert [f.file_id for f in failures] == ["image.tif"]
    assert failures[0].detail["url"] == f"{PORTAL}/ds-1/image.tif"
    assert summary.count(FIXITY_OK) == 1
    assert summary.count(FIXITY_MISMATCH) == 0


def test_unusable_identifier_is_a_fetch_failure(ocfl_root, tmp_path, portal_client):
    write_object(
        ocfl_root,
        "obj",
        [{"ro-crate-metadata.json": make_crate(["a.csv"], identifier="ds\x01bad"), "a.csv": b"1"}],
    )
    audit, reporter = _audit(ocfl_root, tmp_path, client=portal_client, portal_url=PORTAL)

    summary = audit.run()

    assert [f.file_id for f in reporter.of_kind(REMOTE_FETCH_FAILURE)] == ["a.csv"]
    assert summary.count(OBJECT_FAILED) == 0


def test_fetch_filter(populated_root, tmp_path, portal_client, portal_files):
    portal_files["/stream/ds-1/data.csv"] = b"a,b\n1,2\n"

    audit, reporter = _audit(
        populated_root,
        tmp_path,
        client=portal_client,
        portal_url=PORTAL,
        fixity=True,
        fetch_filter=r"\.csv$",
    )
    summary = audit.run()

    assert [f.file_id for f in reporter.of_kind(FETCH_SKIPPED)] == ["image.tif"]
    assert summary.count(REMOTE_FETCH_FAILURE) == 0
    assert summary.count(FIXITY_OK) == 1


def test_one_failing_object_does_not_stop_the_scan(populated_root, tmp_path, monkeypatch, caplog):
    audit, reporter = _audit(populated_root, tmp_path)
    original = audit.check_record

    def flaky(record):
        if record.path == "consistent":
            raise RuntimeError("boom")
        return original(record)

    monkeypatch.setattr(audit, "check_record", flaky)
    summary = audit.run()

    assert [f.object_path for f in reporter.of_kind(OBJECT_FAILED)] == ["consistent"]
    assert summary.count(FILE_DRIFT_DETECTED) == 1
    assert summary.count(FILE_UNRESOLVED) == 1
    assert "check failed for consistent" in caplog.text


def test_checks_run_while_the_walk_is_in_progress(ocfl_root, tmp_path):
    for name in ("a", "b", "c", "d"):
        write_object(
            ocfl_root,
            name,
            [{"ro-crate-metadata.json": make_crate(["f.csv"], identifier=name), "f.csv": b"1"}],
        )
    audit, reporter = _audit(ocfl_root, tmp_path, check_workers=1, fetch_workers=1)

    audit.run()

    kinds = [f.kind for f in reporter.findings]
    last_loaded = len(kinds) - 1 - kinds[::-1].index(OBJECT_LOADED)
    assert kinds.index(FILE_RESOLVED) < last_loaded
    assert kinds.count(FILE_RESOLVED) == 4


def test_temporary_scratch_is_removed(populated_root, portal_client, portal_files):
    portal_files["/stream/ds-1/data.csv"] = b"a,b\n1,2\n"
    portal_files["/stream/ds-1/image.tif"] = b"TIFF"
    config = AuditConfig(repo_root=str(populated_root), portal_url=PORTAL, fixity=True)
    audit = PortalAudit(config, CollectingReporter())
    audit.fetcher.client.close()
    audit.fetcher.client = portal_client
    scratch = audit.fetcher.scratch_dir

    summary = audit.run()

    assert summary.count(FIXITY_OK) == 2
    assert not scratch.exists()


def test_temporary_scratch_with_kept_downloads_survives(
    populated_root, portal_client, portal_files
):
    portal_files["/stream/ds-1/data.csv"] = b"a,b\n1,2\n"
    portal_files["/stream/ds-1/image.tif"] = b"TIFF"
    config = AuditConfig(
        repo_root=str(populated_root), portal_url=PORTAL, keep_downloads=True
    )
    audit = PortalAudit(config, CollectingReporter())
    audit.fetcher.client.close()
    audit.fetcher.client = portal_client
    scratch = audit.fetcher.scratch_dir

    audit.run()

    assert sorted(p.name.split(".", 1)[1] for p in scratch.iterdir()) == [
        "data.csv",
        "image.tif",
    ]
    shutil.rmtree(scratch)


def test_unloadable_repository_is_fatal(tmp_path):
    with pytest.raises(RepositoryNotInitializedError):
        PortalAudit(AuditConfig(repo_root=str(tmp_path)), CollectingReporter())


def test_clean_repository_passes(ocfl_root, tmp_path):
    write_object(
        ocfl_root,
        "obj",
        [{"ro-crate-metadata.json": make_crate(["a.csv"], identifier="x"), "a.csv": b"1"}],
    )
    audit, _ = _audit(ocfl_root, tmp_path)

    summary = audit.run()

    assert summary.passed()
    assert "AUDIT PASSED" in summary.format_report()
    assert summary.to_dict()["status"] == "PASS"


def test_parse_args():
    settings, options = parse_args(
        ["-r", "/repo", "--portal", PORTAL, "--fixity", "--fetch-workers", "3", "-v"]
    )

    assert settings == {
        "repo_root": "/repo",
        "portal_url": PORTAL,
        "fixity": True,
        "fetch_workers": 3,
    }
    assert options["verbose"]

    with pytest.raises(UsageError):
        parse_args(["--workers", "many"])
    with pytest.raises(UsageError):
        parse_args(["--bogus"])


def test_cli_exit_codes(populated_root, ocfl_root, tmp_path, capsys):
    assert main(["--bogus"]) == 2
    assert main([]) == 2
    assert main(["--repo", str(tmp_path / "nowhere")]) == 3
    assert main(["--repo", str(populated_root), "--fixity"]) == 2
    assert main(["--repo", str(populated_root)]) == 1

    err = capsys.readouterr().err
    assert "[FILE_DRIFT_DETECTED] drifted: old.csv" in err
    assert "[CATALOG_NOT_FOUND] bare" in err


def test_cli_clean_run_and_json_output(ocfl_root, tmp_path, capsys):
    write_object(
        ocfl_root,
        "obj",
        [{"ro-crate-metadata.json": make_crate(["a.csv"], identifier="x"), "a.csv": b"1"}],
    )
    json_path = tmp_path / "findings.jsonl"

    assert main(["--repo", str(ocfl_root), "--json", str(json_path), "--quiet"]) == 0

    kinds = [json.loads(line)["kind"] for line in json_path.read_text().splitlines()]
    assert kinds == ["OBJECT_LOADED", "FILE_RESOLVED"]
    assert "AUDIT PASSED" in capsys.readouterr().out
