"""Unit tests for the outcome router: one destination per job, registry before file, unique names."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from core.exceptions import RegistryError, StorageError
from core.interfaces import IConsumerRegistry
from core.models import Extracted, Failed, Job, JobState, Pending, Provenance
from services.consumer_registry import InMemoryConsumerRegistry
from services.outcome_router import OutcomeRouter, safe_original_name, sanitize_reason
from tests.fakes import bill

VALID = "123456789012"
PROV = Provenance(tier="primary", model="model-a", credential_id="key-1", attempt=1)


@pytest.fixture
def dirs(tmp_path: Path) -> dict[str, Path]:
    return {
        "success_dir": tmp_path / "success",
        "failed_dir": tmp_path / "failed",
        "pending_dir": tmp_path / "pending",
    }


@pytest.fixture
def router(dirs: dict[str, Path]) -> OutcomeRouter:
    return OutcomeRouter(InMemoryConsumerRegistry(), **dirs)


def _all_files(dirs: dict[str, Path]) -> list[Path]:
    return [p for d in dirs.values() for p in d.iterdir()]


def test_success_saved_under_consumer_number(router: OutcomeRouter, dirs: dict[str, Path]) -> None:
    job = Job.from_input(0, bill("a.png"))
    data = job.data
    result = router.route(job, Extracted(VALID, PROV, first_attempt=True))
    saved = Path(result.saved_as)
    assert saved.parent == dirs["success_dir"]
    assert saved.name.startswith(f"{VALID}_")
    assert saved.suffix == ".png"
    assert saved.read_bytes() == data
    assert result.duplicate is False
    assert job.state is JobState.SUCCEEDED
    assert job.data == b""
    assert _all_files(dirs) == [saved]


def test_second_occurrence_is_duplicate_and_still_saved(router: OutcomeRouter, dirs: dict[str, Path]) -> None:
    first = router.route(Job.from_input(0, bill("a.png")), Extracted(VALID, PROV, True))
    second = router.route(Job.from_input(1, bill("b.png", shade=10)), Extracted(VALID, PROV, True))
    assert first.duplicate is False
    assert second.duplicate is True
    assert first.saved_as != second.saved_as
    assert len(list(dirs["success_dir"].iterdir())) == 2


def test_failed_name_carries_reason_tag_and_original(router: OutcomeRouter, dirs: dict[str, Path]) -> None:
    job = Job.from_input(0, bill("my bill.png"))
    result = router.route(job, Failed("HTTP 403: PERMISSION_DENIED\nmore detail"))
    saved = Path(result.saved_as)
    assert saved.parent == dirs["failed_dir"]
    assert saved.name.startswith("http_403_permission_denied_")
    assert saved.name.endswith("_my_bill.png")
    assert job.state is JobState.FAILED


def test_pending_keeps_original_name(router: OutcomeRouter, dirs: dict[str, Path]) -> None:
    job = Job.from_input(0, bill("b.png"))
    result = router.route(job, Pending("quota_exhausted", fatal=True))
    saved = Path(result.saved_as)
    assert saved.parent == dirs["pending_dir"]
    assert saved.name.endswith("_b.png")
    assert job.state is JobState.PENDING


def test_same_name_twice_never_overwrites(router: OutcomeRouter, dirs: dict[str, Path]) -> None:
    router.route(Job.from_input(0, bill("same.png")), Pending("batch_stopped_quota"))
    router.route(Job.from_input(1, bill("same.png", shade=3)), Pending("batch_stopped_quota"))
    assert len(list(dirs["pending_dir"].iterdir())) == 2


def test_registry_failure_leaves_no_success_file(dirs: dict[str, Path]) -> None:
    registry = MagicMock(spec=IConsumerRegistry)
    registry.upsert.side_effect = RegistryError("db down")
    router = OutcomeRouter(registry, **dirs)
    with pytest.raises(RegistryError):
        router.route(Job.from_input(0, bill("a.png")), Extracted(VALID, PROV, True))
    assert _all_files(dirs) == []


def test_sanitize_reason() -> None:
    assert sanitize_reason("unreadable_image") == "unreadable_image"
    assert sanitize_reason("") == "unknown"
    assert len(sanitize_reason("x" * 200)) <= 48


def test_safe_original_name_matches_mime() -> None:
    assert safe_original_name("../evil name.png", "image/png") == "evil_name.png"
    assert safe_original_name("scan", "image/jpeg").endswith(".jpg")


def test_failed_save_unregisters_the_new_number(dirs: dict[str, Path], tmp_path: Path) -> None:
    registry = InMemoryConsumerRegistry()
    router = OutcomeRouter(registry, **dirs)
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"not a folder")
    router._success_dir = blocker / "success"
    with pytest.raises(StorageError):
        router.route(Job.from_input(0, bill("a.png")), Extracted(VALID, PROV, True))
    assert registry.find(VALID) is None
    assert registry.count() == 0


def test_failed_save_keeps_a_number_registered_earlier(dirs: dict[str, Path]) -> None:
    registry = InMemoryConsumerRegistry()
    registry.upsert(VALID)
    router = OutcomeRouter(registry, **dirs)
    router._success_dir = dirs["pending_dir"] / "gone"
    with pytest.raises(StorageError):
        router.route(Job.from_input(0, bill("a.png")), Extracted(VALID, PROV, True))
    assert registry.find(VALID) is not None


def test_repended_name_does_not_grow(router: OutcomeRouter, dirs: dict[str, Path]) -> None:
    first = Path(router.route(Job.from_input(0, bill("scan.png")), Pending("batch_stopped_quota")).saved_as)
    again = Path(router.route(Job.from_input(0, bill(first.name)), Pending("batch_stopped_quota")).saved_as)
    assert first.name.endswith("_scan.png")
    assert again.name.endswith("_scan.png")
    assert len(again.name) == len(first.name)
    assert safe_original_name(first.name, "image/png") == "scan.png"
