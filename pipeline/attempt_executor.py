"""
Attempt executor: one recognition call for one job against one (model tier, credential) pair.

Builds the request (image + fixed prompt + output schema), calls the injected provider,
validates the response and classifies the outcome. Never raises for service errors and
never touches shared state; the planner records the returned Attempt on the job.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import OutputFormatError, RecognitionServiceError, RecognitionTransportError
from core.interfaces import IRecognitionProvider
from core.models import (
    Attempt,
    AttemptOutcome,
    Credential,
    FatalBatchCondition,
    Job,
    ModelTier,
    PermanentError,
    Provenance,
    RecognitionRequest,
    RetryableError,
    RetryKind,
    Success,
)
from core.schema import (
    DEFAULT_CONSUMER_NUMBER_LENGTH,
    OUTPUT_SCHEMA,
    ConsumerNumberSchema,
    is_valid_consumer_number,
)
from prompts import load_prompt
from utils.config import AppConfig
from utils.image_utils import downscale_image
from utils.json_utils import parse_json_object

logger = logging.getLogger(__name__)

DEFAULT_TRANSIENT_STATUS_CODES = (429, 500, 503, 504)
DEFAULT_QUOTA_MARKERS = ("PerDay", "per day", "daily")
QUOTA_STATUS_CODE = 429


class AttemptExecutor:
    """Performs and classifies single recognition attempts. Thread-safe (stateless per call)."""

    def __init__(
        self,
        provider: IRecognitionProvider,
        *,
        prompt: str,
        output_schema: dict[str, Any] | None = None,
        consumer_number_length: int = DEFAULT_CONSUMER_NUMBER_LENGTH,
        not_found_policy: str = "retry",
        transient_status_codes: tuple[int, ...] = DEFAULT_TRANSIENT_STATUS_CODES,
        quota_markers: tuple[str, ...] = DEFAULT_QUOTA_MARKERS,
        max_image_px: int = 0,
    ) -> None:
        self._provider = provider
        self._prompt = prompt
        self._schema = output_schema or OUTPUT_SCHEMA
        self._length = consumer_number_length
        self._not_found_ends_chain = not_found_policy == "fail"
        self._transient = frozenset(transient_status_codes)
        self._quota_markers = tuple(m.lower() for m in quota_markers)
        self._max_image_px = max_image_px

    @classmethod
    def from_config(cls, provider: IRecognitionProvider, config: AppConfig) -> AttemptExecutor:
        return cls(
            provider,
            prompt=load_prompt(config.extraction.prompt_file),
            consumer_number_length=config.extraction.consumer_number_length,
            not_found_policy=config.extraction.not_found_policy,
            transient_status_codes=config.retry.transient_status_codes,
            quota_markers=config.retry.quota_markers,
            max_image_px=config.recognition.max_image_px,
        )

    def build_request(self, job: Job) -> RecognitionRequest:
        image = downscale_image(job.data, job.mime_type, self._max_image_px) if self._max_image_px else job.data
        return RecognitionRequest(
            image_bytes=image,
            mime_type=job.mime_type,
            prompt=self._prompt,
            output_schema=self._schema,
        )

    def attempt(self, job: Job, tier: ModelTier, credential: Credential, ordinal: int) -> Attempt:
        """One call. Returns an immutable Attempt carrying the classified outcome."""
        provenance = Provenance(tier=tier.name, model=tier.model, credential_id=credential.id, attempt=ordinal)
        logger.info(
            "[%s] Attempt %s: model=%s credential=%s trace_id=%s",
            job.name, ordinal, tier.model, credential.id, job.trace_id,
        )
        raw_value: str | None = None
        try:
            text = self._provider.recognize(self.build_request(job), model=tier.model, api_key=credential.api_key)
        except RecognitionTransportError as e:
            outcome: AttemptOutcome = RetryableError(RetryKind.TRANSIENT, str(e))
        except RecognitionServiceError as e:
            outcome = self.classify_service_error(e)
        except Exception as e:
            logger.exception("[%s] Unexpected provider error on %s/%s", job.name, tier.model, credential.id)
            outcome = PermanentError(f"{type(e).__name__}: {e}")
        else:
            outcome, raw_value = self.validate_output(text, provenance, trace_id=job.trace_id)
        self._log_outcome(job, outcome)
        return Attempt(
            tier=tier.name,
            model=tier.model,
            credential_id=credential.id,
            ordinal=ordinal,
            outcome=outcome,
            raw_value=raw_value,
        )

    def classify_service_error(self, error: RecognitionServiceError) -> AttemptOutcome:
        message = str(error)
        if error.status_code == QUOTA_STATUS_CODE and self._is_quota_exhausted(message):
            return FatalBatchCondition(message)
        if error.status_code in self._transient:
            return RetryableError(RetryKind.TRANSIENT, message)
        return PermanentError(message)

    def validate_output(
        self,
        text: str,
        provenance: Provenance,
        trace_id: str = "",
    ) -> tuple[AttemptOutcome, str | None]:
        """Classify response text. Returns (outcome, raw extracted value if any)."""
        try:
            data = parse_json_object(text, trace_id=trace_id)
            parsed = ConsumerNumberSchema.model_validate(data)
        except (OutputFormatError, PydanticValidationError) as e:
            return RetryableError(RetryKind.MALFORMED_OUTPUT, f"Output format error: {_first_line(e)}; raw={text[:200]!r}"), None
        value = parsed.consumer_bill_number
        if not value:
            return RetryableError(RetryKind.MALFORMED_OUTPUT, "Output format error: consumer number was empty"), value
        if parsed.is_not_found:
            detail = "Consumer number not found on image"
            if self._not_found_ends_chain:
                return PermanentError(detail, ends_chain=True), value
            return RetryableError(RetryKind.NOT_FOUND, detail), value
        if not is_valid_consumer_number(value, self._length):
            return RetryableError(
                RetryKind.INVALID_VALUE,
                f"Invalid consumer number {value!r}: expected exactly {self._length} digits",
            ), value
        return Success(value=value, provenance=provenance), value

    def _is_quota_exhausted(self, message: str) -> bool:
        lowered = message.lower()
        return any(marker in lowered for marker in self._quota_markers)

    @staticmethod
    def _log_outcome(job: Job, outcome: AttemptOutcome) -> None:
        match outcome:
            case Success(value=value):
                logger.info("[%s] SUCCESS: extracted %s", job.name, value)
            case RetryableError(kind=kind, detail=detail):
                logger.warning("[%s] Retryable %s: %s", job.name, kind.value, _first_line(detail))
            case PermanentError(detail=detail):
                logger.warning("[%s] Permanent error for this model/key: %s", job.name, _first_line(detail))
            case FatalBatchCondition(detail=detail):
                logger.error("[%s] Quota exhausted: %s", job.name, _first_line(detail))


def _first_line(value: object) -> str:
    return str(value).split("\n", 1)[0]
