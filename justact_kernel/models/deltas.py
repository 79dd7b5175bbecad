"""
Deltas — the closed set of Entity Store mutations.

A delta is what the Command Interpreter produces once a command has been
validated: every reference is resolved, defaults are filled in, and the
Entity Store can apply it without further lookups.
"""

from typing import Annotated, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class _Delta(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class DeclareAgent(_Delta):
    kind: Literal["declare_agent"] = "declare_agent"
    name: str
    capabilities: Tuple[str, ...] = ()


class GrantCapability(_Delta):
    kind: Literal["grant_capability"] = "grant_capability"
    agent: str
    capability: str


class RevokeCapability(_Delta):
    kind: Literal["revoke_capability"] = "revoke_capability"
    agent: str
    capability: str


class AssertStatement(_Delta):
    kind: Literal["assert_statement"] = "assert_statement"
    name: str
    agent: str
    payload: str


class RetractStatement(_Delta):
    kind: Literal["retract_statement"] = "retract_statement"
    name: str


class FormAgreement(_Delta):
    kind: Literal["form_agreement"] = "form_agreement"
    name: str
    parties: Tuple[str, ...]
    statements: Tuple[str, ...] = ()
    at: int


class RecordEnactment(_Delta):
    kind: Literal["record_enactment"] = "record_enactment"
    name: str
    agent: str
    agreement: str
    effect: str
    justification: Tuple[str, ...] = ()


class LoadPolicy(_Delta):
    kind: Literal["load_policy"] = "load_policy"
    name: str
    rules: str


class ActivatePolicy(_Delta):
    kind: Literal["activate_policy"] = "activate_policy"
    name: str


class SetTime(_Delta):
    kind: Literal["set_time"] = "set_time"
    now: int


Delta = Annotated[
    Union[
        DeclareAgent,
        GrantCapability,
        RevokeCapability,
        AssertStatement,
        RetractStatement,
        FormAgreement,
        RecordEnactment,
        LoadPolicy,
        ActivatePolicy,
        SetTime,
    ],
    Field(discriminator="kind"),
]
