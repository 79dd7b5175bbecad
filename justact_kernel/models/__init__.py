"""JustAct scenario kernel data models."""

from justact_kernel.models.commands import (
    ActivatePolicyCommand,
    AssertStatementCommand,
    CheckCommand,
    Command,
    DeclareAgentCommand,
    FormAgreementCommand,
    GrantCapabilityCommand,
    InspectCommand,
    LoadPolicyCommand,
    RecordEnactmentCommand,
    RetractStatementCommand,
    RevokeCapabilityCommand,
    RollbackCommand,
    SetTimeCommand,
)
from justact_kernel.models.deltas import (
    ActivatePolicy,
    AssertStatement,
    DeclareAgent,
    Delta,
    FormAgreement,
    GrantCapability,
    LoadPolicy,
    RecordEnactment,
    RetractStatement,
    RevokeCapability,
    SetTime,
)
from justact_kernel.models.entities import (
    Agent,
    Agreement,
    Enactment,
    Policy,
    Snapshot,
    Statement,
)
from justact_kernel.models.log import LogEntry
from justact_kernel.models.outcome import (
    CommandOutcome,
    ErrorReport,
    ExportedStep,
    OutcomeStatus,
    ScenarioExport,
)
from justact_kernel.models.session import SessionConfig
from justact_kernel.models.verdict import (
    EvaluatorErrorReason,
    EvaluatorResponse,
    Verdict,
    VerdictKind,
)

__all__ = [
    "ActivatePolicy",
    "ActivatePolicyCommand",
    "Agent",
    "Agreement",
    "AssertStatement",
    "AssertStatementCommand",
    "CheckCommand",
    "Command",
    "CommandOutcome",
    "DeclareAgent",
    "DeclareAgentCommand",
    "Delta",
    "Enactment",
    "ErrorReport",
    "EvaluatorErrorReason",
    "EvaluatorResponse",
    "ExportedStep",
    "FormAgreement",
    "FormAgreementCommand",
    "GrantCapability",
    "GrantCapabilityCommand",
    "InspectCommand",
    "LoadPolicy",
    "LoadPolicyCommand",
    "LogEntry",
    "OutcomeStatus",
    "Policy",
    "RecordEnactment",
    "RecordEnactmentCommand",
    "RetractStatement",
    "RetractStatementCommand",
    "RevokeCapability",
    "RevokeCapabilityCommand",
    "RollbackCommand",
    "ScenarioExport",
    "SessionConfig",
    "SetTime",
    "SetTimeCommand",
    "Snapshot",
    "Statement",
    "Verdict",
    "VerdictKind",
]
