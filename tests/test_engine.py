"""
End-to-end tests for the extraction engine: fake provider, real planner/router/registry (SQLite on tmp_path).
"""

from __future__ import annotations

from pathlib import Path

import pytest

from core.exceptions import ConfigError, RecognitionServiceError
from core.models import InputFile
from pipeline.engine import ExtractionEngine
from services.database import create_db_engine
from services.history_store import SqlHistoryStore
from tests.fakes import FakeRecognitionProvider, RecordingSleep, answer, bill, png_bytes
from utils.config import AppConfig, PacingConfig, RecognitionConfig, RetryConfig, StorageConfig

VALID = "123456789012"
OTHER = "987654321098"
QUOTA = RecognitionServiceError("HTTP 429: Quota exceeded for quota metric per day", status_code=429)


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        max_workers=2,
        recognition=RecognitionConfig(api_keys=("k1", "k2"), tiers=("model-a", "model-b")),
        retry=RetryConfig(max_retries=2, jitter_sec=0.0),
        pacing=PacingConfig(min_interval_sec=12.0),
        storage=StorageConfig(
            input_dir=str(tmp_path / "Images"),
            success_dir=str(tmp_path / "SuccessImages"),
            failed_dir=str(tmp_path / "FailedImages"),
            pending_dir=str(tmp_path / "PendingImages"),
            output_dir=str(tmp_path / "output"),
            database_url=f"sqlite:///{tmp_path / 'consumer_numbers.db'}",
        ),
    )


def make_engine(config: AppConfig, provider: FakeRecognitionProvider) -> ExtractionEngine:
    return ExtractionEngine.from_config(config, provider=provider, sleep=RecordingSleep())


def _files(folder: str) -> list[Path]:
    return sorted(Path(folder).iterdir())


def test_mixed_batch_report(config: AppConfig) -> None:
    a, b, c = bill("a.png", 1), bill("b.png", 2), bill("c.png", 3)
    provider = FakeRecognitionProvider.by_image(
        {a.data: answer(VALID), b.data: answer(VALID), c.data: answer("NOT_FOUND")}
    )
    broken = InputFile("d.png", b"garbage", "image/png")

    report = make_engine(config, provider).run_batch([a, b, c, broken], batch_id="b1")

    stats = report.stats()
    assert stats["total"] == 4
    assert stats["success"] == 2
    assert stats["duplicates"] == 1
    assert stats["failed"] == 2
    assert stats["pending"] == 0
    assert stats["stopped_due_to_quota"] is False
    assert stats["total"] == stats["success"] + stats["failed"] + stats["pending"]
    assert [r.name for r in report.success] == ["a.png", "b.png"]
    assert [r.name for r in report.failed] == ["c.png", "d.png"]
    assert len(_files(config.storage.success_dir)) == 2
    assert len(_files(config.storage.failed_dir)) == 2


def test_report_dict_shape(config: AppConfig) -> None:
    a = bill("a.png")
    report = make_engine(config, FakeRecognitionProvider.scripted(answer(VALID))).run_batch([a])
    out = report.to_dict()
    assert set(out) == {"batch_id", "timestamp", "success", "failed", "pending", "stats"}
    entry = out["success"][0]
    assert entry["original"] == "a.png"
    assert entry["consumer_number"] == VALID
    assert entry["duplicate"] is False
    assert entry["model"] == "model-a"
    assert Path(entry["saved_as"]).name.startswith(VALID)


def test_same_image_in_later_batch_is_duplicate(config: AppConfig) -> None:
    provider = FakeRecognitionProvider.scripted(answer(VALID))
    engine = make_engine(config, provider)
    first = engine.run_batch([bill("a.png")])
    second = make_engine(config, provider).run_batch([bill("a.png")])
    assert first.duplicate_count == 0
    assert second.duplicate_count == 1
    assert second.success[0].duplicate is True


def test_quota_stop_leaves_rest_pending_and_retry_pending_recovers(config: AppConfig) -> None:
    quota_hit = {"active": True}

    def responder(request, model, api_key):
        return QUOTA if quota_hit["active"] else answer(OTHER)

    provider = FakeRecognitionProvider(responder)
    config = config.with_overrides(max_workers=1)
    engine = make_engine(config, provider)
    files = [bill(f"bill_{i}.png", i) for i in range(3)]

    report = engine.run_batch(files)
    assert report.stopped_due_to_quota is True
    assert report.pending_count == 3
    assert len(_files(config.storage.pending_dir)) == 3

    quota_hit["active"] = False
    retried = engine.retry_pending()
    assert retried.success_count == 3
    assert retried.duplicate_count == 2
    assert _files(config.storage.pending_dir) == []
    assert len(_files(config.storage.success_dir)) == 3


def test_retry_pending_with_empty_folder(config: AppConfig) -> None:
    report = make_engine(config, FakeRecognitionProvider.scripted(answer(VALID))).retry_pending()
    assert report.total == 0


def test_run_folder_removes_inputs_unless_kept(config: AppConfig) -> None:
    folder = Path(config.storage.input_dir)
    folder.mkdir(parents=True)
    (folder / "one.png").write_bytes(png_bytes((1, 2, 3)))
    (folder / "notes.txt").write_text("not an image")
    engine = make_engine(config, FakeRecognitionProvider.scripted(answer(VALID)))

    kept = engine.run_folder(folder, keep_input=True)
    assert kept.success_count == 1
    assert (folder / "one.png").exists()

    engine.run_folder(folder)
    assert not (folder / "one.png").exists()
    assert (folder / "notes.txt").exists()


def test_history_recorded_per_batch(config: AppConfig) -> None:
    engine = make_engine(config, FakeRecognitionProvider.scripted(answer(VALID)))
    engine.run_batch([bill("a.png")], batch_id="first")
    engine.run_batch([bill("b.png", 9)], batch_id="second")

    rows = SqlHistoryStore(create_db_engine(config.storage.database_url)).list_recent()
    assert [r["batch_id"] for r in rows] == ["second", "first"]
    assert rows[0]["duplicate_count"] == 1


def test_missing_credentials_is_config_error(config: AppConfig) -> None:
    no_keys = config.with_overrides(recognition=RecognitionConfig(api_keys=()))
    with pytest.raises(ConfigError):
        ExtractionEngine.from_config(no_keys, provider=FakeRecognitionProvider.scripted(answer(VALID)))
