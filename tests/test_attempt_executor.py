"""
Unit tests for the attempt executor: output validation and error classification.
Provider is a fake; no network.
"""

from __future__ import annotations

import pytest

from core.exceptions import RecognitionServiceError, RecognitionTransportError
from core.models import (
    FatalBatchCondition,
    Job,
    PermanentError,
    Provenance,
    RetryableError,
    RetryKind,
    Success,
)
from pipeline.attempt_executor import AttemptExecutor
from tests.fakes import CREDS, TIERS, FakeRecognitionProvider, answer, bill

PROMPT = "Extract the consumer number."


@pytest.fixture
def job() -> Job:
    return Job.from_input(0, bill("bill.png"))


def _attempt(response, job: Job, **kwargs):
    executor = AttemptExecutor(FakeRecognitionProvider.scripted(response), prompt=PROMPT, **kwargs)
    return executor.attempt(job, TIERS[0], CREDS[0], ordinal=1)


def test_valid_number_is_success_with_provenance(job: Job) -> None:
    attempt = _attempt(answer("123456789012"), job)
    assert attempt.outcome == Success(
        value="123456789012",
        provenance=Provenance(tier="primary", model="model-a", credential_id="key-1", attempt=1),
    )
    assert attempt.raw_value == "123456789012"
    assert attempt.credential_id == "key-1"


def test_whitespace_around_number_is_stripped(job: Job) -> None:
    attempt = _attempt(answer("  123456789012 "), job)
    assert isinstance(attempt.outcome, Success)
    assert attempt.outcome.value == "123456789012"


@pytest.mark.parametrize("value", ["12345678901", "1234567890123", "12345678901A", "1234 5678 9012"])
def test_wrong_format_is_invalid_value(job: Job, value: str) -> None:
    attempt = _attempt(answer(value), job)
    assert isinstance(attempt.outcome, RetryableError)
    assert attempt.outcome.kind is RetryKind.INVALID_VALUE


def test_configured_length_is_respected(job: Job) -> None:
    attempt = _attempt(answer("1234567890"), job, consumer_number_length=10)
    assert isinstance(attempt.outcome, Success)


@pytest.mark.parametrize(
    "text",
    [
        "not json at all",
        '{"other_field": "123456789012"}',
        '{"consumer_Bill_Number": 123456789012}',
        '["123456789012"]',
        "",
    ],
)
def test_malformed_output_is_retryable(job: Job, text: str) -> None:
    attempt = _attempt(text, job)
    assert isinstance(attempt.outcome, RetryableError)
    assert attempt.outcome.kind is RetryKind.MALFORMED_OUTPUT


def test_fenced_json_is_accepted(job: Job) -> None:
    attempt = _attempt('```json\n{"consumer_Bill_Number": "123456789012",}\n```', job)
    assert isinstance(attempt.outcome, Success)


def test_not_found_retries_by_default(job: Job) -> None:
    attempt = _attempt(answer("NOT_FOUND"), job)
    assert isinstance(attempt.outcome, RetryableError)
    assert attempt.outcome.kind is RetryKind.NOT_FOUND


def test_not_found_ends_chain_under_fail_policy(job: Job) -> None:
    attempt = _attempt(answer("NOT_FOUND"), job, not_found_policy="fail")
    assert isinstance(attempt.outcome, PermanentError)
    assert attempt.outcome.ends_chain is True


def test_transport_error_is_transient(job: Job) -> None:
    attempt = _attempt(RecognitionTransportError("connection reset"), job)
    assert attempt.outcome == RetryableError(RetryKind.TRANSIENT, "connection reset")


@pytest.mark.parametrize("status", [429, 500, 503, 504])
def test_transient_status_codes(job: Job, status: int) -> None:
    attempt = _attempt(RecognitionServiceError(f"HTTP {status}: busy", status_code=status), job)
    assert isinstance(attempt.outcome, RetryableError)
    assert attempt.outcome.kind is RetryKind.TRANSIENT


@pytest.mark.parametrize("status", [400, 401, 403, 404])
def test_other_status_codes_are_permanent_for_the_pair(job: Job, status: int) -> None:
    attempt = _attempt(RecognitionServiceError(f"HTTP {status}: nope", status_code=status), job)
    assert isinstance(attempt.outcome, PermanentError)
    assert attempt.outcome.ends_chain is False


def test_daily_quota_is_fatal(job: Job) -> None:
    err = RecognitionServiceError(
        "HTTP 429: RESOURCE_EXHAUSTED: Quota exceeded for GenerateRequestsPerDayPerProjectPerModel",
        status_code=429,
    )
    attempt = _attempt(err, job)
    assert isinstance(attempt.outcome, FatalBatchCondition)


def test_unexpected_provider_exception_is_permanent(job: Job) -> None:
    attempt = _attempt(RuntimeError("boom"), job)
    assert isinstance(attempt.outcome, PermanentError)
    assert "boom" in attempt.outcome.detail


def test_request_carries_image_prompt_and_schema(job: Job) -> None:
    executor = AttemptExecutor(FakeRecognitionProvider.scripted(answer("x")), prompt=PROMPT)
    request = executor.build_request(job)
    assert request.image_bytes == job.data
    assert request.mime_type == "image/png"
    assert request.prompt == PROMPT
    assert "consumer_Bill_Number" in request.output_schema["properties"]
