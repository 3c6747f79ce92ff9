import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from scanimg import main as scanimg_main


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(scanimg_main, "setup_logging", lambda debug=False, log_path=None: MagicMock())


@pytest.fixture
def project(tmp_path, image_file, monkeypatch):
    image_file("img/icon.png", width=4, height=4, size=512)
    (tmp_path / "README.md").write_text("![icon](img/icon.png)\n![again](./img/icon.png)\n")
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_main_renders_table(project):
    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, ["--dir", str(project), "--no-progress"])

    assert result.exit_code == 0, result.output
    assert "OK(file)" in result.output
    assert "4x4" in result.output
    assert "0.50 KB" in result.output


def test_main_json_output(project):
    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, ["--no-progress", "--format", "json"])

    assert result.exit_code == 0, result.output
    rows = json.loads(result.stdout)
    assert rows == [{
        "target": str(Path("img") / "icon.png"),
        "type": "local",
        "size": 512,
        "width": 4,
        "height": 4,
        "status": "OK(file)",
        "occurrences": 2,
    }]


def test_main_no_images(tmp_path):
    (tmp_path / "notes.txt").write_text("nothing to see")
    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, ["--dir", str(tmp_path), "--no-progress"])

    assert result.exit_code == 0
    assert "No images found within the provided paths." in result.output


def test_main_missing_input_dir_exits(tmp_path):
    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, ["--dir", str(tmp_path / "missing"), "--no-progress"])

    assert result.exit_code == 1
    assert "Execution failed" in result.output
    assert "does not exist" in result.output


@pytest.mark.parametrize("option", ["--concurrency", "--timeout"])
def test_main_rejects_non_positive_numbers(option, tmp_path):
    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, ["--dir", str(tmp_path), option, "0"])

    assert result.exit_code == 2


def test_main_invalid_format_is_execution_failure(tmp_path):
    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, ["--dir", str(tmp_path), "--format", "xml"])

    assert result.exit_code == 1
    assert "Execution failed" in result.output


def test_main_applies_overrides(tmp_path, monkeypatch):
    created = {}

    class DummyOrchestrator:
        def __init__(self, config, event_bus, collector, remote_prober, local_prober):
            created["config"] = config
            created["collector"] = collector

        def run(self, paths):
            created["paths"] = paths
            return ()

    monkeypatch.setattr(scanimg_main, "ScanOrchestrator", DummyOrchestrator)

    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, [
        "--dir", str(tmp_path),
        "--dir", str(tmp_path),
        "--timeout", "1234",
        "--concurrency", "7",
        "--ignore", "dist",
        "--format", "JSON",
        "--no-progress",
        "--debug",
    ])

    assert result.exit_code == 0, result.output
    config = created["config"]
    assert config.general.timeout_ms == 1234
    assert config.general.concurrency == 7
    assert config.general.ignored_dirs == ["node_modules", ".git", "dist"]
    assert config.general.debug is True
    assert config.ui.output_format == "json"
    assert config.ui.progress is False
    assert created["paths"] == [tmp_path]
    assert created["collector"].file_scanner.ignored_dirs == {"node_modules", ".git", "dist"}


def test_main_uses_config_input_dirs(tmp_path, monkeypatch):
    created = {}

    class DummyOrchestrator:
        def __init__(self, config, event_bus, collector, remote_prober, local_prober):
            pass

        def run(self, paths):
            created["paths"] = paths
            return ()

    monkeypatch.setattr(scanimg_main, "ScanOrchestrator", DummyOrchestrator)
    config_file = tmp_path / "scanimg.yaml"
    config_file.write_text("input_dirs: [docs, site]\nui:\n  progress: false\n")

    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, ["--config", str(config_file)])

    assert result.exit_code == 0, result.output
    assert created["paths"] == [Path("docs"), Path("site")]


def test_main_invalid_config_exits(tmp_path):
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("general:\n  timeout_ms: -1\n")

    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, ["--config", str(config_file), "--dir", str(tmp_path)])

    assert result.exit_code == 1
    assert "Execution failed" in result.output


def test_main_ctrl_c_exits_130(tmp_path, monkeypatch):
    class InterruptedOrchestrator:
        def __init__(self, **kwargs):
            pass

        def run(self, paths):
            raise KeyboardInterrupt

    monkeypatch.setattr(scanimg_main, "ScanOrchestrator", InterruptedOrchestrator)

    runner = CliRunner()
    result = runner.invoke(scanimg_main.app, ["--dir", str(tmp_path), "--no-progress"])

    assert result.exit_code == 130
