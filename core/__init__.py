"""Core layer: interfaces, models, exceptions."""

from core.interfaces import (
    IRecognitionProvider,
    IConsumerRegistry,
    IHistoryStore,
    IPacer,
)
from core.models import (
    InputFile,
    Job,
    JobResult,
    JobState,
    BatchReport,
    Credential,
    ModelTier,
    Extracted,
    Failed,
    Pending,
)
from core.exceptions import (
    BillExtractionError,
    RecognitionServiceError,
    RecognitionTransportError,
    OutputFormatError,
    RegistryError,
    StorageError,
    ConfigError,
)

__all__ = [
    "IRecognitionProvider",
    "IConsumerRegistry",
    "IHistoryStore",
    "IPacer",
    "InputFile",
    "Job",
    "JobResult",
    "JobState",
    "BatchReport",
    "Credential",
    "ModelTier",
    "Extracted",
    "Failed",
    "Pending",
    "BillExtractionError",
    "RecognitionServiceError",
    "RecognitionTransportError",
    "OutputFormatError",
    "RegistryError",
    "StorageError",
    "ConfigError",
]
