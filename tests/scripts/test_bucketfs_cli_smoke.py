from __future__ import annotations

import io
from pathlib import Path

import pytest

from bucketfs_core.registry import BackendRegistry
from bucketfs_core.store.s3 import S3Backend
from bucketfs_core.store.session_cache import ExpiringCache
from bucketfs_core.testing.fake_s3 import FakeS3Client
from scripts.bucketfs import main


def _registry(client: FakeS3Client) -> BackendRegistry:
    registry = BackendRegistry()
    registry.register(
        "s3",
        lambda params: S3Backend.from_params(
            params, client_factory=lambda config, region: client, region_cache=ExpiringCache()
        ),
    )
    registry.freeze()
    return registry


def _config(tmp_path: Path) -> Path:
    path = tmp_path / "backend.yaml"
    path.write_text(
        "type: s3\naccess_key_id: AKIA\nsecret_access_key: secret\n",
        encoding="utf-8",
    )
    return path


def test_bucketfs_cli_round_trip(tmp_path: Path) -> None:
    client = FakeS3Client()
    client.add_bucket("b")
    registry = _registry(client)
    config = str(_config(tmp_path))
    source = tmp_path / "report.csv"
    source.write_bytes(b"a,b\n1,2\n")

    def run(*argv: str) -> tuple[int, bytes]:
        out = io.BytesIO()
        rc = main(["--config", config, *argv], registry=registry, stdout=out)
        return rc, out.getvalue()

    assert run("mkdir", "/b/reports/")[0] == 0
    assert run("put", str(source), "/b/reports/report.csv")[0] == 0
    assert run("touch", "/b/reports/empty")[0] == 0

    rc, listing = run("ls", "/b/reports/")
    assert rc == 0
    lines = listing.decode("utf-8").splitlines()
    assert any(line.endswith("report.csv") and " 8 " in line for line in lines)
    assert any(line.endswith("empty") for line in lines)

    rc, body = run("cat", "/b/reports/report.csv")
    assert (rc, body) == (0, b"a,b\n1,2\n")

    assert run("mv", "/b/reports/report.csv", "/b/reports/final.csv")[0] == 0
    assert run("rm", "/b/reports/")[0] == 0
    assert client.keys("b") == []

    rc, listing = run("ls", "/")
    assert rc == 0
    assert listing.decode("utf-8").splitlines()[0].endswith("b/")


def test_bucketfs_cli_reports_errors(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    client = FakeS3Client()
    client.add_bucket("b")

    rc = main(
        ["--config", str(_config(tmp_path)), "cat", "/b/missing.txt"],
        registry=_registry(client),
        stdout=io.BytesIO(),
    )

    assert rc == 1
    assert "error:" in capsys.readouterr().err


def test_bucketfs_cli_reads_params_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BUCKETFS_BACKEND", "s3")
    monkeypatch.setenv("S3_ACCESS_KEY_ID", "AKIA")
    monkeypatch.setenv("S3_SECRET_ACCESS_KEY", "secret")
    client = FakeS3Client()
    client.add_bucket("b")
    client.put("b", "hello.txt", b"hi")
    out = io.BytesIO()

    rc = main(["cat", "/b/hello.txt"], registry=_registry(client), stdout=out)

    assert (rc, out.getvalue()) == (0, b"hi")


def test_bucketfs_cli_rejects_missing_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("S3_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BUCKETFS_BACKEND", "s3")

    assert main(["ls", "/"], registry=_registry(FakeS3Client()), stdout=io.BytesIO()) == 1
