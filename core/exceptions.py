"""Custom exceptions for the consumer number extraction engine. No generic Exception usage."""

from __future__ import annotations


class BillExtractionError(Exception):
    """Base exception for extraction engine failures."""

    def __init__(self, message: str, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or ""
        super().__init__(message)


class RecognitionServiceError(BillExtractionError):
    """Recognition service answered with a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        trace_id: str | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, trace_id=trace_id)


class RecognitionTransportError(BillExtractionError):
    """Recognition service could not be reached (timeout, connection reset)."""

    pass


class OutputFormatError(BillExtractionError):
    """Recognition output could not be parsed as the expected JSON object."""

    pass


class RegistryError(BillExtractionError):
    """Consumer number registry or history store operation failed."""

    pass


class StorageError(BillExtractionError):
    """Writing an image to a destination folder failed."""

    pass


class ConfigError(BillExtractionError):
    """Invalid or missing configuration."""

    pass
