"""Scenario Log entry — one applied mutating command."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from justact_kernel.models.commands import AnyMutatingCommand
from justact_kernel.models.deltas import Delta


class LogEntry(BaseModel):
    """
    The record of one applied command.
    Every field answers: what was asked, what changed, and which state resulted.
    """

    sequence: int
    command: AnyMutatingCommand
    delta: Delta
    snapshot_id: str                        # Snapshot produced by applying the delta
    recorded_at: datetime

    # INTEGRITY
    signature: str = ""
    prior_entry_hash: Optional[str] = None
