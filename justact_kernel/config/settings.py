"""Configuration management using Pydantic Settings."""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from justact_kernel.models.session import SessionConfig


class JustActSettings(BaseSettings):
    """Environment-driven settings for a scenario session.

    JUSTACT_EVALUATOR_COMMAND accepts a JSON list, e.g. '["justact-eval", "--json"]'.
    """

    model_config = SettingsConfigDict(
        env_prefix="JUSTACT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    evaluator_command: List[str] = Field(
        default_factory=list,
        description="argv of the external policy evaluator",
    )

    evaluator_timeout_seconds: Optional[float] = Field(
        default=30.0,
        gt=0,
        description="Upper bound on one evaluator round trip",
    )

    record_rejections: bool = Field(
        default=True,
        description="Keep rejected commands in the scenario export",
    )

    log_level: str = Field(default="INFO", description="Logging level")

    log_json: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    def to_session_config(self) -> SessionConfig:
        return SessionConfig(
            evaluator_command=self.evaluator_command,
            evaluator_timeout_seconds=self.evaluator_timeout_seconds,
            record_rejections=self.record_rejections,
        )
