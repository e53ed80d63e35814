"""CLI tests: run / retry-pending / dry-run with a fake provider patched into the engine."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

import main
from tests.fakes import FakeRecognitionProvider, answer, png_bytes


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for key in ("MAX_WORKERS", "DRY_RUN", "INPUT_DIR", "OUTPUT_DIR", "PENDING_DIR", "DATABASE_URL", "GEMINI_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("GEMINI_API_KEYS", "k1,k2")
    (tmp_path / "config.yaml").write_text(
        "pacing:\n  min_interval_sec: 0.001\n"
        "retry:\n  backoff_base_sec: 0\n  jitter_sec: 0\n"
        f"storage:\n  database_url: sqlite:///{tmp_path / 'db.sqlite'}\n"
    )
    images = tmp_path / "Images"
    images.mkdir()
    (images / "bill_1.png").write_bytes(png_bytes((10, 10, 10)))
    (images / "bill_2.png").write_bytes(png_bytes((20, 20, 20)))
    provider = FakeRecognitionProvider.scripted(answer("123456789012"))
    monkeypatch.setattr("pipeline.engine.create_provider", lambda *args, **kwargs: provider)
    # Root handlers would outlive capsys's stream.
    monkeypatch.setattr(main, "setup_logging", lambda *args, **kwargs: None)
    return tmp_path


def test_run_writes_report_and_moves_images(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.main(["run", "--workers", "2"]) == 0

    reports = list((workspace / "output").glob("batch_report_*.json"))
    assert len(reports) == 1
    data = json.loads(reports[0].read_text())
    assert data["stats"]["total"] == 2
    assert data["stats"]["success"] == 2
    assert data["stats"]["duplicates"] == 1
    assert list((workspace / "Images").iterdir()) == []
    assert len(list((workspace / "SuccessImages").iterdir())) == 2
    assert "Batch complete." in capsys.readouterr().out


def test_keep_input(workspace: Path) -> None:
    assert main.main(["run", "--keep-input", "--output-dir", str(workspace / "reports")]) == 0
    assert len(list((workspace / "Images").iterdir())) == 2
    assert len(list((workspace / "reports").glob("batch_report_*.json"))) == 1


def test_dry_run_only_counts(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.main(["run", "--dry-run"]) == 0
    assert "2 image(s)" in capsys.readouterr().out
    assert len(list((workspace / "Images").iterdir())) == 2
    assert not (workspace / "output").exists()


def test_retry_pending_command(workspace: Path) -> None:
    pending = workspace / "PendingImages"
    pending.mkdir()
    (pending / "20260101_abc_old.png").write_bytes(png_bytes((30, 30, 30)))
    assert main.main(["retry-pending"]) == 0
    assert list(pending.iterdir()) == []
    assert len(list((workspace / "SuccessImages").iterdir())) == 1


def test_missing_config_file_exit_code(workspace: Path) -> None:
    assert main.main(["run", "--config", "nope.yaml"]) == 2


def test_missing_keys_exit_code(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEYS")
    assert main.main(["run"]) == 1
