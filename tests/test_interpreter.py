"""Tests for the Command Interpreter."""

import pytest

from justact_kernel.entity_store.store import EntityStore
from justact_kernel.errors import CommandError
from justact_kernel.interpreter.interpreter import CommandInterpreter, parse_command
from justact_kernel.models.commands import (
    ActivatePolicyCommand,
    AssertStatementCommand,
    CheckCommand,
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
    DeclareAgent,
    FormAgreement,
    LoadPolicy,
    RecordEnactment,
)


def _make_store(interpreter: CommandInterpreter) -> EntityStore:
    """A, B declared; s1 asserted by A; g1 formed by A and B on s1; time is 7."""
    store = EntityStore()
    commands = [
        DeclareAgentCommand(name="A"),
        DeclareAgentCommand(name="B", capabilities=["read"]),
        AssertStatementCommand(name="s1", agent="A", payload="B may read dataset X"),
        SetTimeCommand(now=7),
        FormAgreementCommand(name="g1", parties=["A", "B"], statements=["s1"]),
    ]
    for command in commands:
        store.apply(interpreter.interpret(command, store), store.sequence + 1)
    return store


class TestCommandInterpreter:
    def setup_method(self):
        self.interpreter = CommandInterpreter()
        self.store = _make_store(self.interpreter)

    def _reject(self, command) -> CommandError:
        with pytest.raises(CommandError) as exc:
            self.interpreter.interpret(command, self.store)
        return exc.value

    # --- Accepted commands ---

    def test_declare_agent_sorts_capabilities(self):
        delta = self.interpreter.interpret(
            DeclareAgentCommand(name="C", capabilities=["write", "read"]), self.store
        )
        assert delta == DeclareAgent(name="C", capabilities=("read", "write"))

    def test_agreement_defaults_to_current_time(self):
        delta = self.interpreter.interpret(
            FormAgreementCommand(name="g2", parties=["B"], statements=["s1"]), self.store
        )
        assert delta == FormAgreement(name="g2", parties=("B",), statements=("s1",), at=7)

    def test_agreement_explicit_time(self):
        delta = self.interpreter.interpret(
            FormAgreementCommand(name="g2", parties=["A"], at=3), self.store
        )
        assert delta.at == 3

    def test_record_enactment(self):
        delta = self.interpreter.interpret(
            RecordEnactmentCommand(
                name="e1",
                agent="B",
                agreement="g1",
                effect="read dataset X",
                justification=["s1"],
            ),
            self.store,
        )
        assert isinstance(delta, RecordEnactment)
        assert delta.justification == ("s1",)

    def test_empty_policy_is_accepted(self):
        delta = self.interpreter.interpret(LoadPolicyCommand(name="open"), self.store)
        assert delta == LoadPolicy(name="open", rules="")

    # --- Rejections ---

    def test_duplicate_agent(self):
        error = self._reject(DeclareAgentCommand(name="A"))
        assert error.reason == "duplicate_name"
        assert error.field == "name"

    def test_duplicate_statement(self):
        error = self._reject(AssertStatementCommand(name="s1", agent="B", payload="x"))
        assert error.reason == "duplicate_name"

    def test_duplicate_agreement(self):
        error = self._reject(FormAgreementCommand(name="g1", parties=["A"]))
        assert error.reason == "duplicate_name"

    def test_name_with_whitespace(self):
        error = self._reject(DeclareAgentCommand(name="Agent C"))
        assert error.reason == "malformed_argument"

    def test_repeated_capability(self):
        error = self._reject(DeclareAgentCommand(name="C", capabilities=["read", "read"]))
        assert error.reason == "duplicate_reference"
        assert error.field == "capabilities"

    def test_statement_by_unknown_agent(self):
        error = self._reject(AssertStatementCommand(name="s2", agent="C", payload="x"))
        assert error.reason == "unknown_agent"
        assert str(error) == "unknown_agent: unknown agent C"

    def test_empty_payload(self):
        error = self._reject(AssertStatementCommand(name="s2", agent="A", payload="  "))
        assert error.field == "payload"

    def test_grant_held_capability(self):
        error = self._reject(GrantCapabilityCommand(agent="B", capability="read"))
        assert error.reason == "capability_already_granted"

    def test_revoke_missing_capability(self):
        error = self._reject(RevokeCapabilityCommand(agent="A", capability="read"))
        assert error.reason == "capability_not_granted"

    def test_retract_unknown_statement(self):
        error = self._reject(RetractStatementCommand(name="s9"))
        assert error.reason == "unknown_statement"

    def test_retract_twice(self):
        self.store.apply(
            self.interpreter.interpret(RetractStatementCommand(name="s1"), self.store),
            self.store.sequence + 1,
        )
        error = self._reject(RetractStatementCommand(name="s1"))
        assert error.reason == "already_retracted"

    def test_agreement_without_parties(self):
        error = self._reject(FormAgreementCommand(name="g2", parties=[]))
        assert error.reason == "empty_parties"

    def test_agreement_unknown_party(self):
        error = self._reject(FormAgreementCommand(name="g2", parties=["A", "C"]))
        assert error.reason == "unknown_agent"
        assert error.entities == ["C"]

    def test_agreement_repeated_party(self):
        error = self._reject(FormAgreementCommand(name="g2", parties=["A", "A"]))
        assert error.reason == "duplicate_reference"

    def test_agreement_unknown_statement(self):
        error = self._reject(FormAgreementCommand(name="g2", parties=["A"], statements=["s9"]))
        assert error.reason == "unknown_statement"

    def test_agreement_negative_time(self):
        error = self._reject(FormAgreementCommand(name="g2", parties=["A"], at=-1))
        assert error.field == "at"

    def test_enactment_unknown_agent(self):
        error = self._reject(
            RecordEnactmentCommand(name="e2", agent="C", agreement="g1", effect="read dataset X")
        )
        assert error.reason == "unknown_agent"
        assert error.detail == "unknown agent C"

    def test_enactment_unknown_agreement(self):
        error = self._reject(
            RecordEnactmentCommand(name="e1", agent="B", agreement="g9", effect="x")
        )
        assert error.reason == "unknown_agreement"

    def test_enactment_by_non_party(self):
        self.store.apply(
            self.interpreter.interpret(DeclareAgentCommand(name="C"), self.store),
            self.store.sequence + 1,
        )
        error = self._reject(
            RecordEnactmentCommand(name="e1", agent="C", agreement="g1", effect="x")
        )
        assert error.reason == "agent_not_party"

    def test_enactment_effect_already_enacted(self):
        self.store.apply(
            self.interpreter.interpret(
                RecordEnactmentCommand(name="e1", agent="B", agreement="g1", effect="read"),
                self.store,
            ),
            self.store.sequence + 1,
        )
        error = self._reject(
            RecordEnactmentCommand(name="e2", agent="A", agreement="g1", effect="read")
        )
        assert error.reason == "effect_already_enacted"

    def test_enactment_unknown_justification(self):
        error = self._reject(
            RecordEnactmentCommand(
                name="e1", agent="B", agreement="g1", effect="x", justification=["s9"]
            )
        )
        assert error.field == "justification"

    def test_activate_unknown_policy(self):
        error = self._reject(ActivatePolicyCommand(name="strict"))
        assert error.reason == "unknown_policy"

    def test_negative_time(self):
        error = self._reject(SetTimeCommand(now=-1))
        assert error.field == "now"

    def test_control_command_is_not_a_mutation(self):
        error = self._reject(CheckCommand())
        assert error.reason == "not_a_mutation"


class TestControlCommands:
    def setup_method(self):
        self.interpreter = CommandInterpreter()
        self.store = _make_store(self.interpreter)

    def test_rollback_bounds(self):
        self.interpreter.validate_rollback(RollbackCommand(sequence=0), 5)
        self.interpreter.validate_rollback(RollbackCommand(sequence=5), 5)
        with pytest.raises(CommandError) as exc:
            self.interpreter.validate_rollback(RollbackCommand(sequence=6), 5)
        assert exc.value.reason == "sequence_out_of_range"
        with pytest.raises(CommandError) as exc:
            self.interpreter.validate_rollback(RollbackCommand(sequence=-1), 5)
        assert exc.value.reason == "malformed_argument"

    def test_inspect_bounds(self):
        self.interpreter.validate_inspect(InspectCommand(), 5)
        with pytest.raises(CommandError):
            self.interpreter.validate_inspect(InspectCommand(sequence=9), 5)

    def test_check_needs_active_policy(self):
        with pytest.raises(CommandError) as exc:
            self.interpreter.resolve_check_policy(CheckCommand(), self.store)
        assert exc.value.reason == "no_active_policy"

    def test_check_resolves_active_policy(self):
        for command in (LoadPolicyCommand(name="open"), ActivatePolicyCommand(name="open")):
            self.store.apply(
                self.interpreter.interpret(command, self.store), self.store.sequence + 1
            )
        policy = self.interpreter.resolve_check_policy(CheckCommand(), self.store)
        assert policy.name == "open"

    def test_check_rejects_non_positive_timeout(self):
        with pytest.raises(CommandError) as exc:
            self.interpreter.resolve_check_policy(CheckCommand(timeout_seconds=0), self.store)
        assert exc.value.field == "timeout_seconds"


class TestParseCommand:
    def test_parse_valid_document(self):
        command = parse_command({"kind": "set_time", "now": 4})
        assert command == SetTimeCommand(now=4)

    def test_malformed_document(self):
        with pytest.raises(CommandError) as exc:
            parse_command({"kind": "declare_agent"})
        assert exc.value.reason == "malformed_command"
        assert exc.value.command_kind == "declare_agent"

    def test_non_mapping_document(self):
        with pytest.raises(CommandError) as exc:
            parse_command(["declare_agent", "A"])
        assert exc.value.command_kind == "unknown"
