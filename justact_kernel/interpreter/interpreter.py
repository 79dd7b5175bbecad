"""
Command Interpreter — turns one parsed command into one Entity Store delta.

Behavioral Contract:
- Accepts a command and read access to the current Entity Store
- Checks every referenced entity exists and is of the expected kind
  before building a delta, so rejections name the offending field
- Never mutates the store; the store's own invariant checks are a backstop
- Also validates the control commands (check, rollback, inspect)
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping

from pydantic import TypeAdapter, ValidationError

from justact_kernel.entity_store.store import EntityStore
from justact_kernel.errors import CommandError
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
    MutatingCommand,
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
from justact_kernel.models.entities import Policy

_command_adapter = TypeAdapter(Command)


def parse_command(document: Mapping[str, Any]) -> Command:
    """
    Build a Command from its pre-parsed document form, e.g.
    {"kind": "declare_agent", "name": "A"}.
    """
    try:
        return _command_adapter.validate_python(document)
    except ValidationError as e:
        kind = document.get("kind", "unknown") if isinstance(document, Mapping) else "unknown"
        raise CommandError(
            command_kind=str(kind),
            reason="malformed_command",
            detail=f"{e.error_count()} validation error(s): {_summarize(e)}",
        ) from e


def _summarize(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
        for err in error.errors()
    )


def _check_name(command_kind: str, field: str, value: str) -> None:
    """Names are non-empty and contain no whitespace."""
    if not value or any(ch.isspace() for ch in value):
        raise CommandError(
            command_kind,
            "malformed_argument",
            f"{field} must be a non-empty name without whitespace, got {value!r}",
            field=field,
        )


def _check_distinct(command_kind: str, field: str, values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        _check_name(command_kind, field, value)
        if value in seen:
            raise CommandError(
                command_kind,
                "duplicate_reference",
                f"{field} lists '{value}' more than once",
                field=field,
                entities=[value],
            )
        seen.append(value)
    return seen


class CommandInterpreter:
    """
    Validates commands against the current scenario and produces deltas.
    """

    def __init__(self):
        # Handler registry: maps command kinds to delta builders
        self._handlers: Dict[str, Callable[[Any, EntityStore], Delta]] = {
            "declare_agent": self._declare_agent,
            "grant_capability": self._grant_capability,
            "revoke_capability": self._revoke_capability,
            "assert_statement": self._assert_statement,
            "retract_statement": self._retract_statement,
            "form_agreement": self._form_agreement,
            "record_enactment": self._record_enactment,
            "load_policy": self._load_policy,
            "activate_policy": self._activate_policy,
            "set_time": self._set_time,
        }

    def interpret(self, command: MutatingCommand, store: EntityStore) -> Delta:
        """Validate a mutating command and return the delta it stands for."""
        handler = self._handlers.get(command.kind)
        if handler is None:
            raise CommandError(
                command.kind,
                "not_a_mutation",
                f"'{command.kind}' does not change the scenario",
            )
        return handler(command, store)

    # --- Control commands ---

    def resolve_check_policy(self, command: CheckCommand, store: EntityStore) -> Policy:
        """The policy a check will be evaluated under."""
        if command.timeout_seconds is not None and command.timeout_seconds <= 0:
            raise CommandError(
                command.kind,
                "malformed_argument",
                f"timeout must be positive, got {command.timeout_seconds}",
                field="timeout_seconds",
            )
        policy = store.active_policy
        if policy is None:
            raise CommandError(
                command.kind,
                "no_active_policy",
                "load and activate a policy before checking the scenario",
            )
        return policy

    def validate_rollback(self, command: RollbackCommand, current_sequence: int) -> None:
        self._check_sequence(command.kind, command.sequence, current_sequence)

    def validate_inspect(self, command: InspectCommand, current_sequence: int) -> None:
        if command.sequence is not None:
            self._check_sequence(command.kind, command.sequence, current_sequence)

    def _check_sequence(self, kind: str, sequence: int, current_sequence: int) -> None:
        if sequence < 0:
            raise CommandError(
                kind,
                "malformed_argument",
                f"sequence cannot be negative, got {sequence}",
                field="sequence",
            )
        if sequence > current_sequence:
            raise CommandError(
                kind,
                "sequence_out_of_range",
                f"sequence {sequence} exceeds the current sequence {current_sequence}",
                field="sequence",
            )

    # --- Shared reference checks ---

    def _require_new(self, kind: str, field: str, name: str, existing: Any) -> None:
        _check_name(kind, field, name)
        if existing is not None:
            raise CommandError(
                kind,
                "duplicate_name",
                f"{field} '{name}' is already taken",
                field=field,
                entities=[name],
            )

    def _require_agent(self, kind: str, field: str, name: str, store: EntityStore):
        _check_name(kind, field, name)
        agent = store.get_agent(name)
        if agent is None:
            raise CommandError(
                kind, "unknown_agent", f"unknown agent {name}", field=field, entities=[name]
            )
        return agent

    def _require_statement(self, kind: str, field: str, name: str, store: EntityStore):
        _check_name(kind, field, name)
        statement = store.get_statement(name)
        if statement is None:
            raise CommandError(
                kind,
                "unknown_statement",
                f"unknown statement {name}",
                field=field,
                entities=[name],
            )
        return statement

    # --- Handlers ---

    def _declare_agent(self, command: DeclareAgentCommand, store: EntityStore) -> Delta:
        self._require_new(command.kind, "name", command.name, store.get_agent(command.name))
        capabilities = _check_distinct(command.kind, "capabilities", command.capabilities)
        return DeclareAgent(name=command.name, capabilities=tuple(sorted(capabilities)))

    def _grant_capability(self, command: GrantCapabilityCommand, store: EntityStore) -> Delta:
        agent = self._require_agent(command.kind, "agent", command.agent, store)
        _check_name(command.kind, "capability", command.capability)
        if command.capability in agent.capabilities:
            raise CommandError(
                command.kind,
                "capability_already_granted",
                f"agent {agent.name} already holds '{command.capability}'",
                field="capability",
                entities=[agent.name],
            )
        return GrantCapability(agent=agent.name, capability=command.capability)

    def _revoke_capability(self, command: RevokeCapabilityCommand, store: EntityStore) -> Delta:
        agent = self._require_agent(command.kind, "agent", command.agent, store)
        if command.capability not in agent.capabilities:
            raise CommandError(
                command.kind,
                "capability_not_granted",
                f"agent {agent.name} does not hold '{command.capability}'",
                field="capability",
                entities=[agent.name],
            )
        return RevokeCapability(agent=agent.name, capability=command.capability)

    def _assert_statement(self, command: AssertStatementCommand, store: EntityStore) -> Delta:
        self._require_new(
            command.kind, "name", command.name, store.get_statement(command.name)
        )
        self._require_agent(command.kind, "agent", command.agent, store)
        if not command.payload.strip():
            raise CommandError(
                command.kind,
                "malformed_argument",
                "statement payload cannot be empty",
                field="payload",
            )
        return AssertStatement(
            name=command.name, agent=command.agent, payload=command.payload
        )

    def _retract_statement(self, command: RetractStatementCommand, store: EntityStore) -> Delta:
        statement = self._require_statement(command.kind, "name", command.name, store)
        if statement.retracted:
            raise CommandError(
                command.kind,
                "already_retracted",
                f"statement {statement.name} was retracted at sequence {statement.retracted_at}",
                field="name",
                entities=[statement.name],
            )
        return RetractStatement(name=statement.name)

    def _form_agreement(self, command: FormAgreementCommand, store: EntityStore) -> Delta:
        self._require_new(
            command.kind, "name", command.name, store.get_agreement(command.name)
        )
        if not command.parties:
            raise CommandError(
                command.kind,
                "empty_parties",
                f"agreement {command.name} needs at least one party",
                field="parties",
            )
        parties = _check_distinct(command.kind, "parties", command.parties)
        for party in parties:
            self._require_agent(command.kind, "parties", party, store)
        statements = _check_distinct(command.kind, "statements", command.statements)
        for name in statements:
            self._require_statement(command.kind, "statements", name, store)
        at = store.time if command.at is None else command.at
        if at < 0:
            raise CommandError(
                command.kind,
                "malformed_argument",
                f"agreement time cannot be negative, got {at}",
                field="at",
            )
        return FormAgreement(
            name=command.name,
            parties=tuple(parties),
            statements=tuple(statements),
            at=at,
        )

    def _record_enactment(self, command: RecordEnactmentCommand, store: EntityStore) -> Delta:
        self._require_new(
            command.kind, "name", command.name, store.get_enactment(command.name)
        )
        agent = self._require_agent(command.kind, "agent", command.agent, store)
        _check_name(command.kind, "agreement", command.agreement)
        agreement = store.get_agreement(command.agreement)
        if agreement is None:
            raise CommandError(
                command.kind,
                "unknown_agreement",
                f"unknown agreement {command.agreement}",
                field="agreement",
                entities=[command.agreement],
            )
        if agent.name not in agreement.parties:
            raise CommandError(
                command.kind,
                "agent_not_party",
                f"agent {agent.name} is not a party of agreement {agreement.name}",
                field="agent",
                entities=[agent.name, agreement.name],
            )
        if not command.effect.strip():
            raise CommandError(
                command.kind,
                "malformed_argument",
                "enactment effect cannot be empty",
                field="effect",
            )
        if store.is_enacted(agreement.name, command.effect):
            raise CommandError(
                command.kind,
                "effect_already_enacted",
                f"agreement {agreement.name} was already cited for effect {command.effect!r}",
                field="effect",
                entities=[agreement.name],
            )
        justification = _check_distinct(command.kind, "justification", command.justification)
        for name in justification:
            self._require_statement(command.kind, "justification", name, store)
        return RecordEnactment(
            name=command.name,
            agent=agent.name,
            agreement=agreement.name,
            effect=command.effect,
            justification=tuple(justification),
        )

    def _load_policy(self, command: LoadPolicyCommand, store: EntityStore) -> Delta:
        self._require_new(command.kind, "name", command.name, store.get_policy(command.name))
        # Rule text is opaque; an empty bundle is a legitimate always-true policy
        return LoadPolicy(name=command.name, rules=command.rules)

    def _activate_policy(self, command: ActivatePolicyCommand, store: EntityStore) -> Delta:
        _check_name(command.kind, "name", command.name)
        if store.get_policy(command.name) is None:
            raise CommandError(
                command.kind,
                "unknown_policy",
                f"unknown policy {command.name}",
                field="name",
                entities=[command.name],
            )
        return ActivatePolicy(name=command.name)

    def _set_time(self, command: SetTimeCommand, store: EntityStore) -> Delta:
        if command.now < 0:
            raise CommandError(
                command.kind,
                "malformed_argument",
                f"scenario time cannot be negative, got {command.now}",
                field="now",
            )
        return SetTime(now=command.now)
