"""Tests for the avail command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from avail import main as cli
from avail.health.checks import HTTP_ENV_VAR
from avail.runtime import ProcessState


@pytest.fixture
def runtime(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "run"
    monkeypatch.setenv("AVAIL_RUNTIME_DIR", str(root))
    monkeypatch.setenv("AVAIL_CONFIG", str(tmp_path / "missing.json"))
    monkeypatch.setenv("AVAIL_LOG_LEVEL", "WARNING")
    return root


def _publish(root: Path, pid: int, title: str, latency: int, health: int) -> None:
    d = root / str(pid) / title
    d.mkdir(parents=True)
    (d / "latency").write_text(f"{latency}\n")
    (d / "health").write_text(f"{health}\n")


class TestStatusAndList:
    def test_list_by_pid(self, runtime: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _publish(runtime, 321, "b-site", 5, 1)
        _publish(runtime, 321, "a-site", 9, 0)
        assert cli.main(["list", "-P", "321"]) == cli.CODE_SUCCESS
        assert capsys.readouterr().out.split() == ["a-site", "b-site"]

    def test_list_by_pid_file(self, runtime: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _publish(runtime, 321, "site", 5, 1)
        pid_file = tmp_path / "x.pid"
        pid_file.write_text("321\n")
        assert cli.main(["list", "-p", str(pid_file)]) == cli.CODE_SUCCESS
        assert capsys.readouterr().out.split() == ["site"]

    def test_pid_file_from_config(self, runtime: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _publish(runtime, 55, "site", 5, 1)
        pid_file = tmp_path / "cfg.pid"
        pid_file.write_text("55\n")
        cfg = tmp_path / "config.json"
        cfg.write_text(json.dumps({"pidFile": str(pid_file), "pings": []}))
        assert cli.main(["list", "-c", str(cfg)]) == cli.CODE_SUCCESS
        assert capsys.readouterr().out.split() == ["site"]

    def test_default_pid_file(self, runtime: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _publish(runtime, 77, "site", 5, 1)
        (runtime / "main.pid").write_text("77\n")
        assert cli.main(["list"]) == cli.CODE_SUCCESS
        assert capsys.readouterr().out.split() == ["site"]

    def test_status(self, runtime: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _publish(runtime, 321, "api", 12, 1)
        _publish(runtime, 321, "web", 480, 0)
        assert cli.main(["status", "-P", "321"]) == cli.CODE_SUCCESS
        out = capsys.readouterr().out
        assert "api:" in out and "OK" in out and "12 ms" in out
        assert "web:" in out and "FAILED" in out and "480 ms" in out

    def test_status_selected_titles(self, runtime: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _publish(runtime, 321, "api", 12, 1)
        _publish(runtime, 321, "web", 480, 0)
        assert cli.main(["status", "-P", "321", "web"]) == cli.CODE_SUCCESS
        out = capsys.readouterr().out
        assert "web:" in out
        assert "api:" not in out

    def test_no_such_daemon(self, runtime: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["status", "-P", "999"]) == cli.CODE_GENERAL_ERR
        assert "no running daemon" in capsys.readouterr().err

    def test_missing_pid_file(self, runtime: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["list"]) == cli.CODE_GENERAL_ERR
        assert "cannot read PID file" in capsys.readouterr().err


class TestHttp:
    @pytest.fixture
    def raw(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
        path = tmp_path / "raw.http"
        path.write_bytes(
            b"HTTP/1.1 418 I'm a teapot\r\nContent-Type: text/plain\r\nContent-Length: 6\r\n\r\nteapot"
        )
        monkeypatch.setenv(HTTP_ENV_VAR, str(path))
        return path

    def test_status(self, raw: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["http", "status"]) == cli.CODE_SUCCESS
        assert capsys.readouterr().out == "418\n"

    def test_header(self, raw: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["http", "header", "content-type"]) == cli.CODE_SUCCESS
        assert capsys.readouterr().out == "text/plain\n"

    def test_missing_header(self, raw: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["http", "header", "x-nope"]) == cli.CODE_SUCCESS
        assert capsys.readouterr().out == "\n"

    def test_unset_env(self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
        monkeypatch.delenv(HTTP_ENV_VAR, raising=False)
        assert cli.main(["http", "status"]) == cli.CODE_GENERAL_ERR
        assert "not set" in capsys.readouterr().err


class TestInvocation:
    def test_no_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main([]) == cli.CODE_INVALID_INVOCATION

    def test_unknown_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["explode"]) == cli.CODE_INVALID_INVOCATION

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["-v"]) == cli.CODE_SUCCESS
        assert capsys.readouterr().out.strip() == "0.1.0"

    def test_run_invalid_config(self, runtime: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        cfg = tmp_path / "bad.json"
        cfg.write_text(json.dumps({"pings": [{"title": "x", "url": "http://x", "check": {"type": "nope"}}]}))
        assert cli.main(["run", "-c", str(cfg)]) == cli.CODE_INVALID_CONFIG

    def test_run_conflict(
        self, runtime: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setattr("avail.daemon.process_state", lambda pid: ProcessState.ALIVE)
        cfg = tmp_path / "config.json"
        pid_file = tmp_path / "main.pid"
        pid_file.write_text("4242\n")
        cfg.write_text(json.dumps({"pidFile": str(pid_file), "pings": []}))
        assert cli.main(["run", "-c", str(cfg)]) == cli.CODE_INITIALIZATION_FAILED
        assert "already exists" in capsys.readouterr().err
        assert pid_file.read_text() == "4242\n"

    def test_run_bad_probe_is_initialization_failure(
        self, runtime: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        cfg = tmp_path / "config.json"
        pid_file = tmp_path / "main.pid"
        cfg.write_text(json.dumps({
            "pidFile": str(pid_file),
            "pings": [{"title": "x", "url": "http://x.test/", "interval": "whenever"}],
        }))
        assert cli.main(["run", "-c", str(cfg)]) == cli.CODE_INITIALIZATION_FAILED
        assert "whenever" in capsys.readouterr().err
        assert not pid_file.exists()
