"""
Entity Store — the canonical, versioned record of a scenario.

Updated by: Session Controller (deltas from the Command Interpreter)
Queried by: Command Interpreter + Evaluation Bridge (via snapshots)

Behavioral Contract:
- apply() is atomic. A pure validation pass checks every invariant the
  delta touches; only then is anything mutated.
- Entities are never deleted. Retraction and revocation are layered on top
  by later deltas.
- The store is a fold over log entries 0..sequence; it performs no I/O.
  An empty store sits at EMPTY_SEQUENCE, so the first delta is sequence 0.
"""

import hashlib
import json
from enum import Enum
from typing import Callable, Dict, Optional, Set, Tuple

from justact_kernel.errors import InvariantViolation
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

# Sequence of the empty scenario, before any delta is applied
EMPTY_SEQUENCE = -1


class Invariant(str, Enum):
    MONOTONIC_SEQUENCE = "monotonic_sequence"
    UNIQUE_NAME = "unique_name"
    ASSERTING_AGENT_EXISTS = "asserting_agent_exists"
    AGREEMENT_PARTIES = "agreement_parties"
    AGREEMENT_STATEMENTS_PRECEDE = "agreement_statements_precede"
    ENACTMENT_AGREEMENT_EXISTS = "enactment_agreement_exists"
    ENACTMENT_AGENT_IS_PARTY = "enactment_agent_is_party"
    ENACTMENT_EFFECT_UNIQUE = "enactment_effect_unique"
    JUSTIFICATION_EXISTS = "justification_exists"
    CAPABILITY_STATE = "capability_state"
    RETRACTION_STATE = "retraction_state"
    POLICY_EXISTS = "policy_exists"
    NON_NEGATIVE_TIME = "non_negative_time"


def compute_snapshot_id(snapshot: Snapshot) -> str:
    """Content hash of a snapshot, independent of the identifier field itself."""
    data = snapshot.model_dump(mode="json", exclude={"snapshot_id"})
    return hashlib.sha256(json.dumps(data, sort_keys=True).encode()).hexdigest()


class EntityStore:
    """
    In-memory entity store. Owned exclusively by one Session Controller.
    """

    def __init__(self):
        self._sequence = EMPTY_SEQUENCE
        self._time = 0
        self._agents: Dict[str, Agent] = {}
        self._statements: Dict[str, Statement] = {}
        self._agreements: Dict[str, Agreement] = {}
        self._enactments: Dict[str, Enactment] = {}
        self._policies: Dict[str, Policy] = {}
        self._active_policy: Optional[str] = None
        self._enacted_effects: Set[Tuple[str, str]] = set()
        self._snapshot: Optional[Snapshot] = None

        # Validator and mutator registries: one entry per delta variant
        self._validators: Dict[type, Callable] = {
            DeclareAgent: self._validate_declare_agent,
            GrantCapability: self._validate_grant_capability,
            RevokeCapability: self._validate_revoke_capability,
            AssertStatement: self._validate_assert_statement,
            RetractStatement: self._validate_retract_statement,
            FormAgreement: self._validate_form_agreement,
            RecordEnactment: self._validate_record_enactment,
            LoadPolicy: self._validate_load_policy,
            ActivatePolicy: self._validate_activate_policy,
            SetTime: self._validate_set_time,
        }
        self._mutators: Dict[type, Callable] = {
            DeclareAgent: self._declare_agent,
            GrantCapability: self._grant_capability,
            RevokeCapability: self._revoke_capability,
            AssertStatement: self._assert_statement,
            RetractStatement: self._retract_statement,
            FormAgreement: self._form_agreement,
            RecordEnactment: self._record_enactment,
            LoadPolicy: self._load_policy,
            ActivatePolicy: self._activate_policy,
            SetTime: self._set_time,
        }

    # --- Queries ---

    @property
    def sequence(self) -> int:
        """Log sequence number of the last applied delta (EMPTY_SEQUENCE when empty)."""
        return self._sequence

    @property
    def time(self) -> int:
        """Current scenario time."""
        return self._time

    @property
    def active_policy(self) -> Optional[Policy]:
        if self._active_policy is None:
            return None
        return self._policies[self._active_policy]

    def get_agent(self, name: str) -> Optional[Agent]:
        return self._agents.get(name)

    def get_statement(self, name: str) -> Optional[Statement]:
        return self._statements.get(name)

    def get_agreement(self, name: str) -> Optional[Agreement]:
        return self._agreements.get(name)

    def get_enactment(self, name: str) -> Optional[Enactment]:
        return self._enactments.get(name)

    def get_policy(self, name: str) -> Optional[Policy]:
        return self._policies.get(name)

    def is_enacted(self, agreement: str, effect: str) -> bool:
        """Whether an enactment already cites this agreement for this effect."""
        return (agreement, effect) in self._enacted_effects

    def snapshot(self) -> Snapshot:
        """Immutable view of the current state."""
        if self._snapshot is None:
            snapshot = Snapshot(
                sequence=self._sequence,
                time=self._time,
                agents=tuple(self._agents.values()),
                statements=tuple(self._statements.values()),
                agreements=tuple(self._agreements.values()),
                enactments=tuple(self._enactments.values()),
                policies=tuple(self._policies.values()),
                active_policy=self._active_policy,
            )
            self._snapshot = snapshot.model_copy(
                update={"snapshot_id": compute_snapshot_id(snapshot)}
            )
        return self._snapshot

    # --- Mutation ---

    def validate(self, delta: Delta, sequence: int) -> None:
        """
        Check that applying `delta` at `sequence` keeps every invariant.
        Raises InvariantViolation; never mutates.
        """
        if sequence != self._sequence + 1:
            raise InvariantViolation(
                Invariant.MONOTONIC_SEQUENCE.value,
                f"expected sequence {self._sequence + 1}, got {sequence}",
            )
        self._validators[type(delta)](delta, sequence)

    def apply(self, delta: Delta, sequence: int) -> Snapshot:
        """Apply a delta atomically and return the resulting snapshot."""
        self.validate(delta, sequence)
        self._mutators[type(delta)](delta, sequence)
        self._sequence = sequence
        self._snapshot = None
        return self.snapshot()

    # --- Validators ---

    def _require_unique(self, kind: str, registry: dict, name: str) -> None:
        if name in registry:
            raise InvariantViolation(
                Invariant.UNIQUE_NAME.value,
                f"{kind} '{name}' already exists",
                entities=[name],
            )

    def _validate_declare_agent(self, delta: DeclareAgent, sequence: int) -> None:
        self._require_unique("agent", self._agents, delta.name)

    def _validate_grant_capability(self, delta: GrantCapability, sequence: int) -> None:
        agent = self._agents.get(delta.agent)
        if agent is None or delta.capability in agent.capabilities:
            raise InvariantViolation(
                Invariant.CAPABILITY_STATE.value,
                f"cannot grant '{delta.capability}' to '{delta.agent}'",
                entities=[delta.agent],
            )

    def _validate_revoke_capability(self, delta: RevokeCapability, sequence: int) -> None:
        agent = self._agents.get(delta.agent)
        if agent is None or delta.capability not in agent.capabilities:
            raise InvariantViolation(
                Invariant.CAPABILITY_STATE.value,
                f"cannot revoke '{delta.capability}' from '{delta.agent}'",
                entities=[delta.agent],
            )

    def _validate_assert_statement(self, delta: AssertStatement, sequence: int) -> None:
        self._require_unique("statement", self._statements, delta.name)
        if delta.agent not in self._agents:
            raise InvariantViolation(
                Invariant.ASSERTING_AGENT_EXISTS.value,
                f"statement '{delta.name}' asserted by undeclared agent '{delta.agent}'",
                entities=[delta.name, delta.agent],
            )

    def _validate_retract_statement(self, delta: RetractStatement, sequence: int) -> None:
        statement = self._statements.get(delta.name)
        if statement is None or statement.retracted:
            raise InvariantViolation(
                Invariant.RETRACTION_STATE.value,
                f"statement '{delta.name}' is missing or already retracted",
                entities=[delta.name],
            )

    def _validate_form_agreement(self, delta: FormAgreement, sequence: int) -> None:
        self._require_unique("agreement", self._agreements, delta.name)
        if not delta.parties or len(set(delta.parties)) != len(delta.parties):
            raise InvariantViolation(
                Invariant.AGREEMENT_PARTIES.value,
                f"agreement '{delta.name}' needs a non-empty list of distinct parties",
                entities=[delta.name],
            )
        unknown = [p for p in delta.parties if p not in self._agents]
        if unknown:
            raise InvariantViolation(
                Invariant.AGREEMENT_PARTIES.value,
                f"agreement '{delta.name}' names undeclared parties {unknown}",
                entities=[delta.name] + unknown,
            )
        for name in delta.statements:
            statement = self._statements.get(name)
            if statement is None or statement.asserted_at >= sequence:
                raise InvariantViolation(
                    Invariant.AGREEMENT_STATEMENTS_PRECEDE.value,
                    f"agreement '{delta.name}' cites '{name}', which was not asserted before it",
                    entities=[delta.name, name],
                )
        if delta.at < 0:
            raise InvariantViolation(
                Invariant.NON_NEGATIVE_TIME.value,
                f"agreement '{delta.name}' holds at negative time {delta.at}",
                entities=[delta.name],
            )

    def _validate_record_enactment(self, delta: RecordEnactment, sequence: int) -> None:
        self._require_unique("enactment", self._enactments, delta.name)
        agreement = self._agreements.get(delta.agreement)
        if agreement is None:
            raise InvariantViolation(
                Invariant.ENACTMENT_AGREEMENT_EXISTS.value,
                f"enactment '{delta.name}' cites unknown agreement '{delta.agreement}'",
                entities=[delta.name, delta.agreement],
            )
        if delta.agent not in agreement.parties:
            raise InvariantViolation(
                Invariant.ENACTMENT_AGENT_IS_PARTY.value,
                f"agent '{delta.agent}' is not a party of agreement '{delta.agreement}'",
                entities=[delta.name, delta.agent, delta.agreement],
            )
        if self.is_enacted(delta.agreement, delta.effect):
            raise InvariantViolation(
                Invariant.ENACTMENT_EFFECT_UNIQUE.value,
                f"agreement '{delta.agreement}' already licensed effect {delta.effect!r}",
                entities=[delta.name, delta.agreement],
            )
        missing = [s for s in delta.justification if s not in self._statements]
        if missing:
            raise InvariantViolation(
                Invariant.JUSTIFICATION_EXISTS.value,
                f"enactment '{delta.name}' is justified by unknown statements {missing}",
                entities=[delta.name] + missing,
            )

    def _validate_load_policy(self, delta: LoadPolicy, sequence: int) -> None:
        self._require_unique("policy", self._policies, delta.name)

    def _validate_activate_policy(self, delta: ActivatePolicy, sequence: int) -> None:
        if delta.name not in self._policies:
            raise InvariantViolation(
                Invariant.POLICY_EXISTS.value,
                f"policy '{delta.name}' was never loaded",
                entities=[delta.name],
            )

    def _validate_set_time(self, delta: SetTime, sequence: int) -> None:
        if delta.now < 0:
            raise InvariantViolation(
                Invariant.NON_NEGATIVE_TIME.value,
                f"scenario time cannot be negative ({delta.now})",
            )

    # --- Mutators (only called after validation) ---

    def _declare_agent(self, delta: DeclareAgent, sequence: int) -> None:
        self._agents[delta.name] = Agent(
            name=delta.name,
            capabilities=tuple(sorted(set(delta.capabilities))),
            declared_at=sequence,
        )

    def _grant_capability(self, delta: GrantCapability, sequence: int) -> None:
        agent = self._agents[delta.agent]
        self._agents[delta.agent] = agent.model_copy(
            update={"capabilities": tuple(sorted(agent.capabilities + (delta.capability,)))}
        )

    def _revoke_capability(self, delta: RevokeCapability, sequence: int) -> None:
        agent = self._agents[delta.agent]
        self._agents[delta.agent] = agent.model_copy(
            update={
                "capabilities": tuple(
                    c for c in agent.capabilities if c != delta.capability
                )
            }
        )

    def _assert_statement(self, delta: AssertStatement, sequence: int) -> None:
        self._statements[delta.name] = Statement(
            name=delta.name,
            agent=delta.agent,
            payload=delta.payload,
            asserted_at=sequence,
        )

    def _retract_statement(self, delta: RetractStatement, sequence: int) -> None:
        statement = self._statements[delta.name]
        self._statements[delta.name] = statement.model_copy(
            update={"retracted_at": sequence}
        )

    def _form_agreement(self, delta: FormAgreement, sequence: int) -> None:
        self._agreements[delta.name] = Agreement(
            name=delta.name,
            parties=delta.parties,
            statements=delta.statements,
            at=delta.at,
            formed_at=sequence,
        )

    def _record_enactment(self, delta: RecordEnactment, sequence: int) -> None:
        self._enactments[delta.name] = Enactment(
            name=delta.name,
            agent=delta.agent,
            agreement=delta.agreement,
            effect=delta.effect,
            justification=delta.justification,
            enacted_at=sequence,
        )
        self._enacted_effects.add((delta.agreement, delta.effect))

    def _load_policy(self, delta: LoadPolicy, sequence: int) -> None:
        self._policies[delta.name] = Policy(
            name=delta.name, rules=delta.rules, loaded_at=sequence
        )

    def _activate_policy(self, delta: ActivatePolicy, sequence: int) -> None:
        self._active_policy = delta.name

    def _set_time(self, delta: SetTime, sequence: int) -> None:
        self._time = delta.now
