"""Session configuration."""

from typing import List, Optional

from pydantic import BaseModel, Field


class SessionConfig(BaseModel):
    """Configuration for the Session Controller."""

    evaluator_command: List[str] = []       # argv of the external evaluator
    evaluator_timeout_seconds: Optional[float] = Field(default=30.0, gt=0)
    record_rejections: bool = True          # Keep rejected commands in the export
