"""
Pydantic schema for recognition output and the JSON schema sent to the service.
Used by pipeline.attempt_executor and providers.
"""
from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

CONSUMER_NUMBER_FIELD = "consumer_Bill_Number"
NOT_FOUND_SENTINEL = "NOT_FOUND"
DEFAULT_CONSUMER_NUMBER_LENGTH = 12


# ---------------------------------------------------------------------------
# Output schema descriptor (JSON Schema; providers translate as needed)
# ---------------------------------------------------------------------------

OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        CONSUMER_NUMBER_FIELD: {
            "type": "string",
            "description": (
                "The unique consumer account number printed on the electricity bill, "
                f"or {NOT_FOUND_SENTINEL} when no consumer number is visible."
            ),
        },
    },
    "required": [CONSUMER_NUMBER_FIELD],
}


# ---------------------------------------------------------------------------
# Parsed output
# ---------------------------------------------------------------------------


class ConsumerNumberSchema(BaseModel):
    """Structured output of one recognition call."""

    model_config = ConfigDict(populate_by_name=True)

    consumer_bill_number: str = Field(alias=CONSUMER_NUMBER_FIELD)

    @field_validator("consumer_bill_number", mode="before")
    @classmethod
    def must_be_text(cls, v: Any) -> str:
        # Models sometimes emit the number as a JSON integer; leading zeros would be lost.
        if not isinstance(v, str):
            raise ValueError("consumer number must be a string")
        return v.strip()

    @property
    def is_not_found(self) -> bool:
        return self.consumer_bill_number.upper() == NOT_FOUND_SENTINEL


def consumer_number_pattern(length: int = DEFAULT_CONSUMER_NUMBER_LENGTH) -> re.Pattern[str]:
    """Exact-format predicate: ``length`` ASCII digits and nothing else."""
    return re.compile(rf"[0-9]{{{length}}}")


def is_valid_consumer_number(value: str, length: int = DEFAULT_CONSUMER_NUMBER_LENGTH) -> bool:
    return consumer_number_pattern(length).fullmatch(value or "") is not None
