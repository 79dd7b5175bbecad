"""Command outcomes and the scenario export built from them."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from justact_kernel.models.commands import Command
from justact_kernel.models.verdict import Verdict


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    REJECTED = "rejected"
    CHECKED = "checked"
    ROLLED_BACK = "rolled_back"
    INSPECTED = "inspected"


class ErrorReport(BaseModel):
    """Structured account of why a command was rejected."""
    category: str                           # "command_error" | "invariant_violation"
    reason: str                             # Machine-readable
    detail: str                             # Human-readable
    field: Optional[str] = None
    entities: List[str] = []


class CommandOutcome(BaseModel):
    """What the Session Controller did with one command."""

    command: Command
    status: OutcomeStatus
    sequence: int                           # Current sequence after the command
    snapshot_id: str
    error: Optional[ErrorReport] = None
    verdict: Optional[Verdict] = None
    discarded_entries: int = 0              # Rollback only
    inspection: Optional[dict] = None       # Inspect only

    @property
    def accepted(self) -> bool:
        return self.status != OutcomeStatus.REJECTED


class ExportedStep(BaseModel):
    command: Command
    outcome: CommandOutcome


class ScenarioExport(BaseModel):
    """
    Ordered (command, outcome) pairs, the only artifact persisted across runs.

    Replaying the commands in order against a fresh session reproduces
    every recorded snapshot identifier.
    """

    steps: List[ExportedStep] = []
    final_sequence: int = -1               # Empty scenario
    final_snapshot_id: str = ""
    exported_at: datetime
