"""Scenario entities — the canonical record held by the Entity Store."""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Agent(BaseModel):
    """A named participant that asserts statements and enacts effects."""

    model_config = ConfigDict(frozen=True)

    name: str
    capabilities: Tuple[str, ...] = ()      # Sorted, currently granted
    declared_at: int                        # Log sequence of the declaration


class Statement(BaseModel):
    """An immutable fact asserted by exactly one agent."""

    model_config = ConfigDict(frozen=True)

    name: str
    agent: str                              # Asserting agent
    payload: str                            # Opaque policy-language term
    asserted_at: int
    retracted_at: Optional[int] = None      # Retraction marker, never removed

    @property
    def retracted(self) -> bool:
        return self.retracted_at is not None


class Agreement(BaseModel):
    """
    Joint acceptance of a set of statements by a set of agents.

    Licenses future enactments; each enactment must cite the agreement
    it relies on, and the enacting agent must be one of the parties.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    parties: Tuple[str, ...] = Field(min_length=1)
    statements: Tuple[str, ...] = ()
    at: int                                 # Scenario time at which it holds
    formed_at: int


class Enactment(BaseModel):
    """The record that an agent executed an effect, justified by an agreement."""

    model_config = ConfigDict(frozen=True)

    name: str
    agent: str
    agreement: str
    effect: str                             # Opaque policy-language term
    justification: Tuple[str, ...] = ()     # Extra statements backing the action
    enacted_at: int


class Policy(BaseModel):
    """A named bundle of rules in the external policy language."""

    model_config = ConfigDict(frozen=True)

    name: str
    rules: str
    loaded_at: int


class Snapshot(BaseModel):
    """
    Read-only view of the scenario at one log sequence number.

    Entities are ordered by the sequence at which they entered the store,
    so two snapshots of the same history serialize identically.
    """

    model_config = ConfigDict(frozen=True)

    sequence: int
    time: int = 0
    agents: Tuple[Agent, ...] = ()
    statements: Tuple[Statement, ...] = ()
    agreements: Tuple[Agreement, ...] = ()
    enactments: Tuple[Enactment, ...] = ()
    policies: Tuple[Policy, ...] = ()
    active_policy: Optional[str] = None
    snapshot_id: str = ""

    def agent(self, name: str) -> Optional[Agent]:
        return next((a for a in self.agents if a.name == name), None)

    def statement(self, name: str) -> Optional[Statement]:
        return next((s for s in self.statements if s.name == name), None)

    def agreement(self, name: str) -> Optional[Agreement]:
        return next((a for a in self.agreements if a.name == name), None)

    def enactment(self, name: str) -> Optional[Enactment]:
        return next((e for e in self.enactments if e.name == name), None)

    def policy(self, name: str) -> Optional[Policy]:
        return next((p for p in self.policies if p.name == name), None)
