"""
End-to-end test: Data Exchange scenario.

Runs the scenario through a session backed by an external evaluator process:

  1. A and B are declared; A asserts s1 = "B may read dataset X"
     (A=0, B=1, s1=2)
  2. A and B form agreement g1 citing s1; B records enactment e1
     "read dataset X" citing g1 (g1=3, e1=4)
  3. check under an empty, always-true policy is Valid
  4. An enactment e2 citing g1 by the undeclared agent C is rejected
     with "unknown agent C"
  5. rollback(2) removes g1 and e1 from the current snapshot, while
     replay to sequence 4 still reproduces them identically

The scripted variant adds a non-trivial policy, a retraction that makes
the scenario invalid, and export replay into a fresh session.
"""

import json
import sys

import pytest

from justact_kernel.models.commands import (
    ActivatePolicyCommand,
    AssertStatementCommand,
    CheckCommand,
    DeclareAgentCommand,
    FormAgreementCommand,
    LoadPolicyCommand,
    RecordEnactmentCommand,
    RetractStatementCommand,
    RollbackCommand,
)
from justact_kernel.models.outcome import OutcomeStatus
from justact_kernel.models.session import SessionConfig
from justact_kernel.models.verdict import VerdictKind
from justact_kernel.session.controller import SessionController
from justact_kernel.session.script import load_script

# Empty rules accept everything. Any other rules require every enactment to
# rest on an agreement whose statements are all still asserted.
EVALUATOR_SOURCE = """
import json, sys
request = json.load(sys.stdin)
if request["policy"]["rules"].strip():
    retracted = {s["name"] for s in request["statements"] if s["retracted"]}
    agreements = {a["name"]: a for a in request["agreements"]}
    for e in request["enactments"]:
        stale = sorted(set(agreements[e["agreement"]]["statements"]) & retracted)
        if stale:
            print(json.dumps({"verdict": "invalid", "witness": {"enactment": e["name"], "retracted": stale}}))
            sys.exit(0)
print(json.dumps({"verdict": "valid"}))
"""

SCRIPT = """
# Data exchange between A and B
{"kind": "declare_agent", "name": "A"}
{"kind": "declare_agent", "name": "B"}
{"kind": "assert_statement", "name": "s1", "agent": "A", "payload": "B may read dataset X"}
{"kind": "form_agreement", "name": "g1", "parties": ["A", "B"], "statements": ["s1"]}
{"kind": "record_enactment", "name": "e1", "agent": "B", "agreement": "g1", "effect": "read dataset X"}

{"kind": "load_policy", "name": "justified", "rules": "enactment(E) :- agreement(E, G), asserted(G)."}
{"kind": "activate_policy", "name": "justified"}
"""


@pytest.fixture
def script_path(tmp_path):
    path = tmp_path / "data_exchange.jsonl"
    path.write_text(SCRIPT, encoding="utf-8")
    return path


def _make_session() -> SessionController:
    return SessionController(
        config=SessionConfig(
            evaluator_command=[sys.executable, "-c", EVALUATOR_SOURCE],
            evaluator_timeout_seconds=30.0,
        )
    )


class TestDataExchangeScenarioE2E:
    """The data exchange scenario, step by step."""

    def setup_method(self):
        self.session = _make_session()

    def test_full_scenario(self):
        # Steps 1-2
        outcomes = self.session.run_script([
            DeclareAgentCommand(name="A"),
            DeclareAgentCommand(name="B"),
            AssertStatementCommand(name="s1", agent="A", payload="B may read dataset X"),
            FormAgreementCommand(name="g1", parties=["A", "B"], statements=["s1"]),
            RecordEnactmentCommand(name="e1", agent="B", agreement="g1", effect="read dataset X"),
        ])
        assert [o.status for o in outcomes] == [OutcomeStatus.APPLIED] * 5
        assert [o.sequence for o in outcomes] == [0, 1, 2, 3, 4]
        recorded = self.session.snapshot()
        assert recorded.agreement("g1").formed_at == 3
        assert recorded.enactment("e1").enacted_at == 4

        # Step 3: empty policy
        self.session.run_script([
            LoadPolicyCommand(name="always", rules=""),
            ActivatePolicyCommand(name="always"),
        ])
        verdict = self.session.execute(CheckCommand()).verdict
        assert verdict.kind == VerdictKind.VALID
        assert verdict.policy_name == "always"

        # Step 4
        rejected = self.session.execute(
            RecordEnactmentCommand(name="e2", agent="C", agreement="g1", effect="read dataset X")
        )
        assert rejected.status == OutcomeStatus.REJECTED
        assert rejected.error.category == "command_error"
        assert rejected.error.detail == "unknown agent C"
        assert self.session.sequence == 6

        # Step 5
        rolled_back = self.session.execute(RollbackCommand(sequence=2))
        assert rolled_back.status == OutcomeStatus.ROLLED_BACK
        current = self.session.snapshot()
        assert current.sequence == 2
        assert current.agreement("g1") is None
        assert current.enactment("e1") is None
        assert current.statement("s1") is not None

        replayed = self.session.snapshot_at(4)
        assert replayed == recorded
        assert replayed.agreement("g1") == recorded.agreement("g1")
        assert replayed.enactment("e1") == recorded.enactment("e1")
        assert replayed.snapshot_id == self.session.log.get(4).snapshot_id


class TestScriptedScenarioE2E:
    """The scenario read from a script file, under a non-trivial policy."""

    def setup_method(self):
        self.session = _make_session()

    def test_full_scenario(self, script_path):
        commands = load_script(script_path)
        assert len(commands) == 7

        outcomes = self.session.run_script(commands)
        assert all(o.status == OutcomeStatus.APPLIED for o in outcomes)
        assert self.session.sequence == 6

        verdict = self.session.execute(CheckCommand()).verdict
        assert verdict.kind == VerdictKind.VALID
        assert verdict.policy_name == "justified"

        rejected = self.session.execute(
            RecordEnactmentCommand(name="e2", agent="C", agreement="g1", effect="read dataset X")
        )
        assert rejected.error.reason == "unknown_agent"

        # The enactment loses its justification
        self.session.execute(RetractStatementCommand(name="s1"))
        verdict = self.session.execute(CheckCommand()).verdict
        assert verdict.kind == VerdictKind.INVALID
        assert verdict.witness == {"enactment": "e1", "retracted": ["s1"]}

        recorded = self.session.snapshot_at(4)
        rolled_back = self.session.execute(RollbackCommand(sequence=2))
        assert rolled_back.discarded_entries == 5
        snapshot = self.session.snapshot()
        assert [a.name for a in snapshot.agents] == ["A", "B"]
        assert snapshot.statement("s1").retracted is False
        assert snapshot.active_policy is None

        # Re-issuing the rewound commands reproduces the recorded state
        self.session.run_script(commands[3:5])
        assert self.session.snapshot() == recorded

        fresh = _make_session()
        fresh.replay_export(self.session.export(), run_checks=True)
        assert fresh.snapshot() == self.session.snapshot()
        assert [v.kind for v in fresh.verdicts] == [VerdictKind.VALID, VerdictKind.INVALID]

    def test_log_integrity_after_scenario(self, script_path):
        self.session.run_script(load_script(script_path))
        self.session.execute(RollbackCommand(sequence=4))
        self.session.execute(RetractStatementCommand(name="s1"))

        assert self.session.log.verify_chain_integrity() is True
        for entry in self.session.log.entries():
            assert self.session.snapshot_at(entry.sequence).snapshot_id == entry.snapshot_id

    def test_export_is_json_serializable(self, script_path):
        self.session.run_script(load_script(script_path))
        self.session.execute(CheckCommand())

        document = json.loads(self.session.export().model_dump_json())
        assert [step["outcome"]["status"] for step in document["steps"]] == [
            "applied"
        ] * 7 + ["checked"]
        assert document["final_sequence"] == 6
