"""Tests for the command-line interface."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

from watchrun import __version__
from watchrun.cli import create_parser, run_cli
from watchrun.logging import reset_logging

CONFIG = """\
actions:
  build: echo built
file_triggers:
  - include: src/*.go
    trigger: build
"""


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()


@pytest.fixture
def config_file(project: Path) -> Path:
    path = project / "watchrun.yaml"
    path.write_text(CONFIG)
    return path


class TestParser:
    def test_defaults(self):
        parsed = create_parser().parse_args([])
        assert parsed.config is None
        assert parsed.dir == "."
        assert parsed.verbose == 0
        assert not parsed.check
        assert not parsed.list_paths

    def test_repeated_verbose(self):
        assert create_parser().parse_args(["-vv"]).verbose == 2

    def test_version(self, capsys: pytest.CaptureFixture[str]):
        with pytest.raises(SystemExit) as exc_info:
            run_cli(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestRunCli:
    def test_check(self, project: Path, config_file: Path, capsys: pytest.CaptureFixture[str]):
        assert run_cli(["-c", str(config_file), "-d", str(project), "--check"]) == 0
        assert capsys.readouterr().out == "configuration ok\n"

    def test_check_discovers_config(
        self,
        project: Path,
        config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ):
        monkeypatch.chdir(project)
        assert run_cli(["--check"]) == 0
        assert "configuration ok" in capsys.readouterr().out

    def test_list_paths(
        self, project: Path, config_file: Path, capsys: pytest.CaptureFixture[str]
    ):
        assert run_cli(["-c", str(config_file), "-d", str(project), "--list-paths"]) == 0
        assert capsys.readouterr().out.splitlines() == [str(project / "src")]

    def test_missing_config(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]):
        assert run_cli(["-c", str(tmp_path / "nope.yaml"), "--check"]) == 1
        assert "not found" in capsys.readouterr().err

    def test_invalid_config(self, project: Path, capsys: pytest.CaptureFixture[str]):
        path = project / "watchrun.yaml"
        path.write_text(CONFIG.replace("trigger: build", "trigger: deploy"))

        assert run_cli(["-c", str(path), "-d", str(project), "--check"]) == 1
        assert "deploy" in capsys.readouterr().err

    def test_missing_directory(
        self, tmp_path: Path, config_file: Path, capsys: pytest.CaptureFixture[str]
    ):
        assert run_cli(["-c", str(config_file), "-d", str(tmp_path / "gone"), "--check"]) == 1
        assert "not a directory" in capsys.readouterr().err

    def test_nothing_to_watch(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]):
        path = tmp_path / "watchrun.yaml"
        path.write_text(CONFIG)

        assert run_cli(["-c", str(path), "-d", str(tmp_path)]) == 1
        assert "no paths to watch" in capsys.readouterr().err


@pytest.mark.skipif(sys.platform == "win32", reason="requires POSIX signals")
class TestTermination:
    def test_sigterm_takes_services_down(self, project: Path, tmp_path: Path):
        pid_file = tmp_path / "serve.pid"
        config = project / "watchrun.yaml"
        config.write_text(
            CONFIG
            + "services:\n"
            + f"  serve: echo $$ > {pid_file}; exec sleep 300\n"
            + "on_start: serve\n"
            + "settings:\n  restart_backoff: 0.05\n"
        )

        proc = subprocess.Popen(
            [sys.executable, "-m", "watchrun", "-c", str(config), "-d", str(project)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        try:
            deadline = time.monotonic() + 20
            while not (pid_file.exists() and pid_file.read_text().strip()):
                assert proc.poll() is None, "watchrun exited early"
                assert time.monotonic() < deadline, "service never started"
                time.sleep(0.05)
            pid = int(pid_file.read_text())

            proc.send_signal(signal.SIGTERM)
            assert proc.wait(timeout=20) == 128 + signal.SIGTERM
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
