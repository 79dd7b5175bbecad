"""
Commands — one parsed scripting-language command per model.

Mutating commands mirror the delta variants one-to-one. The control
commands (check, rollback, inspect) never produce a delta.
"""

from typing import Annotated, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# --- Mutating commands ---

class DeclareAgentCommand(_Command):
    kind: Literal["declare_agent"] = "declare_agent"
    name: str
    capabilities: Tuple[str, ...] = ()


class GrantCapabilityCommand(_Command):
    kind: Literal["grant_capability"] = "grant_capability"
    agent: str
    capability: str


class RevokeCapabilityCommand(_Command):
    kind: Literal["revoke_capability"] = "revoke_capability"
    agent: str
    capability: str


class AssertStatementCommand(_Command):
    kind: Literal["assert_statement"] = "assert_statement"
    name: str
    agent: str
    payload: str


class RetractStatementCommand(_Command):
    kind: Literal["retract_statement"] = "retract_statement"
    name: str


class FormAgreementCommand(_Command):
    kind: Literal["form_agreement"] = "form_agreement"
    name: str
    parties: Tuple[str, ...]
    statements: Tuple[str, ...] = ()
    at: Optional[int] = None                # Defaults to the scenario's current time


class RecordEnactmentCommand(_Command):
    kind: Literal["record_enactment"] = "record_enactment"
    name: str
    agent: str
    agreement: str
    effect: str
    justification: Tuple[str, ...] = ()


class LoadPolicyCommand(_Command):
    kind: Literal["load_policy"] = "load_policy"
    name: str
    rules: str = ""


class ActivatePolicyCommand(_Command):
    kind: Literal["activate_policy"] = "activate_policy"
    name: str


class SetTimeCommand(_Command):
    kind: Literal["set_time"] = "set_time"
    now: int


# --- Control commands ---

class CheckCommand(_Command):
    kind: Literal["check"] = "check"
    timeout_seconds: Optional[float] = None  # Overrides the session default


class RollbackCommand(_Command):
    kind: Literal["rollback"] = "rollback"
    sequence: int


class InspectCommand(_Command):
    kind: Literal["inspect"] = "inspect"
    sequence: Optional[int] = None          # Defaults to the current sequence


MutatingCommand = Union[
    DeclareAgentCommand,
    GrantCapabilityCommand,
    RevokeCapabilityCommand,
    AssertStatementCommand,
    RetractStatementCommand,
    FormAgreementCommand,
    RecordEnactmentCommand,
    LoadPolicyCommand,
    ActivatePolicyCommand,
    SetTimeCommand,
]

ControlCommand = Union[CheckCommand, RollbackCommand, InspectCommand]

Command = Annotated[
    Union[MutatingCommand, ControlCommand],
    Field(discriminator="kind"),
]

AnyMutatingCommand = Annotated[MutatingCommand, Field(discriminator="kind")]
