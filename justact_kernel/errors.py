"""Scenario exception hierarchy.

All kernel errors inherit from ScenarioError, so a driver can tell the
kernel's own failures apart from bugs at its boundary.
"""

from typing import Iterable, Optional

from justact_kernel.models.outcome import ErrorReport


class ScenarioError(Exception):
    """Base exception for all scenario kernel errors."""


class CommandError(ScenarioError):
    """A command referenced an unknown entity, reused a name, or was malformed."""

    def __init__(
        self,
        command_kind: str,
        reason: str,
        detail: str,
        field: Optional[str] = None,
        entities: Iterable[str] = (),
    ):
        super().__init__(f"{reason}: {detail}")
        self.command_kind = command_kind
        self.reason = reason
        self.detail = detail
        self.field = field
        self.entities = list(entities)

    def to_report(self) -> ErrorReport:
        return ErrorReport(
            category="command_error",
            reason=self.reason,
            detail=self.detail,
            field=self.field,
            entities=self.entities,
        )


class InvariantViolation(ScenarioError):
    """Applying a delta would break an Entity Store invariant."""

    def __init__(self, invariant: str, detail: str, entities: Iterable[str] = ()):
        super().__init__(f"invariant '{invariant}' violated: {detail}")
        self.invariant = invariant
        self.detail = detail
        self.entities = list(entities)

    def to_report(self) -> ErrorReport:
        return ErrorReport(
            category="invariant_violation",
            reason=self.invariant,
            detail=self.detail,
            entities=self.entities,
        )


class EvaluatorUnavailableError(ScenarioError):
    """The external evaluator cannot be invoked at all. Fatal for the session."""


class SessionTerminatedError(ScenarioError):
    """The session hit a fatal error earlier and accepts no further commands."""
