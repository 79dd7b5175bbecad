"""Verdict — the three-way outcome of an evaluation."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator


class VerdictKind(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    EVALUATOR_ERROR = "evaluator_error"


class EvaluatorErrorReason(str, Enum):
    """Why the validity question could not be answered."""
    TIMEOUT = "timeout"
    PROCESS_FAILURE = "process_failure"
    MALFORMED_RESPONSE = "malformed_response"


class Verdict(BaseModel):
    """
    The evaluator's ruling on one snapshot under one policy.

    A verdict is tied to the policy that was active when the check ran;
    activating a different policy later never revalidates it.
    """

    kind: VerdictKind
    policy_name: str
    sequence: int
    snapshot_id: str
    witness: Optional[Any] = None                   # Passed through unmodified
    artifact: Optional[Any] = None                  # Opaque visualisation handle
    error_reason: Optional[EvaluatorErrorReason] = None
    error_detail: Optional[str] = None
    evaluated_at: datetime
    duration_seconds: float = 0.0

    @property
    def is_valid(self) -> bool:
        return self.kind == VerdictKind.VALID


class EvaluatorResponse(BaseModel):
    """The response document an evaluator writes back."""

    model_config = ConfigDict(extra="ignore")

    verdict: Literal["valid", "invalid"]
    witness: Optional[Any] = None
    artifact: Optional[Any] = None                  # Opaque, passed through

    @model_validator(mode="after")
    def _invalid_requires_witness(self) -> "EvaluatorResponse":
        if self.verdict == "invalid" and self.witness is None:
            raise ValueError("an invalid verdict must carry a witness")
        return self
