"""
Session Controller — runs one scenario, one command at a time.

Owns the single live Entity Store and Scenario Log of a session and
sequences every command through them:

  mutating command: interpret → apply → log
  check:            snapshot + active policy → Evaluation Bridge → verdict
  rollback:         replay to the target sequence → rewind the log
  inspect:          build the evaluator request without sending it

Rejected commands leave the store and the log exactly as they were.
Scripted and interactive use share execute(), so both observe the same
outcomes for the same command sequence.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from justact_kernel.config.logging import get_logger
from justact_kernel.entity_store.store import EMPTY_SEQUENCE, EntityStore
from justact_kernel.errors import (
    CommandError,
    EvaluatorUnavailableError,
    InvariantViolation,
    SessionTerminatedError,
)
from justact_kernel.evaluation.bridge import (
    EvaluationBridge,
    Evaluator,
    SubprocessEvaluator,
    build_evaluation_request,
)
from justact_kernel.interpreter.interpreter import CommandInterpreter
from justact_kernel.models.commands import (
    CheckCommand,
    Command,
    InspectCommand,
    RollbackCommand,
)
from justact_kernel.models.entities import Snapshot
from justact_kernel.models.outcome import (
    CommandOutcome,
    ExportedStep,
    OutcomeStatus,
    ScenarioExport,
)
from justact_kernel.models.session import SessionConfig
from justact_kernel.models.verdict import Verdict
from justact_kernel.scenario_log.store import ScenarioLog

logger = get_logger(__name__)


class SessionController:
    """
    The single writer of a scenario's state.
    """

    def __init__(
        self,
        evaluator: Optional[Evaluator] = None,
        config: Optional[SessionConfig] = None,
        interpreter: Optional[CommandInterpreter] = None,
    ):
        self.config = config or SessionConfig()
        self.interpreter = interpreter or CommandInterpreter()

        if evaluator is None and self.config.evaluator_command:
            evaluator = SubprocessEvaluator(self.config.evaluator_command)
        self.bridge: Optional[EvaluationBridge] = (
            EvaluationBridge(evaluator, self.config.evaluator_timeout_seconds)
            if evaluator is not None
            else None
        )

        self._store = EntityStore()
        self._log = ScenarioLog()
        self._verdicts: List[Verdict] = []
        self._steps: List[ExportedStep] = []
        self._terminated = False

    # --- State access ---

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def log(self) -> ScenarioLog:
        return self._log

    @property
    def sequence(self) -> int:
        return self._log.current_sequence

    @property
    def verdicts(self) -> List[Verdict]:
        """Every verdict produced by `check`, oldest first."""
        return list(self._verdicts)

    @property
    def terminated(self) -> bool:
        return self._terminated

    def snapshot(self) -> Snapshot:
        """Snapshot of the current state."""
        return self._store.snapshot()

    def snapshot_at(self, sequence: int) -> Snapshot:
        """
        Snapshot at any sequence the log still holds, re-derived by replay.

        After a rollback this includes the rewound entries, until a new
        mutating command overwrites them. EMPTY_SEQUENCE gives the empty
        scenario.
        """
        if sequence == self._log.current_sequence:
            return self._store.snapshot()
        return self._log.replay(to_sequence=sequence).snapshot()

    # --- Commands ---

    def execute(self, command: Command) -> CommandOutcome:
        """Run one command to completion and report what happened."""
        if self._terminated:
            raise SessionTerminatedError(
                "session was terminated by an earlier fatal error"
            )

        if isinstance(command, CheckCommand):
            outcome = self._check(command)
        elif isinstance(command, RollbackCommand):
            outcome = self._rollback(command)
        elif isinstance(command, InspectCommand):
            outcome = self._inspect(command)
        else:
            outcome = self._apply(command)

        if outcome.status != OutcomeStatus.REJECTED or self.config.record_rejections:
            self._steps.append(ExportedStep(command=command, outcome=outcome))
        return outcome

    def run_script(
        self,
        commands: Iterable[Command],
        stop_on_error: bool = False,
    ) -> List[CommandOutcome]:
        """Execute a pre-parsed script through the same path as interactive input."""
        outcomes = []
        for command in commands:
            outcome = self.execute(command)
            outcomes.append(outcome)
            if stop_on_error and outcome.status == OutcomeStatus.REJECTED:
                break
        return outcomes

    def _apply(self, command) -> CommandOutcome:
        sequence = self._log.current_sequence + 1
        try:
            delta = self.interpreter.interpret(command, self._store)
            snapshot = self._store.apply(delta, sequence)
        except (CommandError, InvariantViolation) as e:
            return self._rejected(command, e)

        entry = self._log.append(command, delta, snapshot.snapshot_id)
        logger.info(
            "command_applied",
            kind=command.kind,
            sequence=entry.sequence,
            snapshot_id=snapshot.snapshot_id[:12],
        )
        return CommandOutcome(
            command=command,
            status=OutcomeStatus.APPLIED,
            sequence=entry.sequence,
            snapshot_id=snapshot.snapshot_id,
        )

    def _check(self, command: CheckCommand) -> CommandOutcome:
        try:
            policy = self.interpreter.resolve_check_policy(command, self._store)
        except CommandError as e:
            return self._rejected(command, e)

        if self.bridge is None:
            self._terminate("no evaluator configured")
            raise EvaluatorUnavailableError("no evaluator configured for this session")

        snapshot = self._store.snapshot()
        try:
            verdict = self.bridge.evaluate(
                snapshot, policy, timeout=command.timeout_seconds
            )
        except EvaluatorUnavailableError as e:
            self._terminate(str(e))
            raise

        self._verdicts.append(verdict)
        logger.info(
            "evaluation_completed",
            verdict=verdict.kind.value,
            policy=policy.name,
            sequence=snapshot.sequence,
        )
        return CommandOutcome(
            command=command,
            status=OutcomeStatus.CHECKED,
            sequence=snapshot.sequence,
            snapshot_id=snapshot.snapshot_id,
            verdict=verdict,
        )

    def _rollback(self, command: RollbackCommand) -> CommandOutcome:
        try:
            self.interpreter.validate_rollback(command, self._log.current_sequence)
            store = self._log.replay(to_sequence=command.sequence)
        except (CommandError, InvariantViolation) as e:
            return self._rejected(command, e)

        discarded = self._log.rewind(command.sequence)
        self._store = store
        snapshot = store.snapshot()
        logger.info(
            "scenario_rolled_back",
            sequence=command.sequence,
            discarded_entries=discarded,
        )
        return CommandOutcome(
            command=command,
            status=OutcomeStatus.ROLLED_BACK,
            sequence=snapshot.sequence,
            snapshot_id=snapshot.snapshot_id,
            discarded_entries=discarded,
        )

    def _inspect(self, command: InspectCommand) -> CommandOutcome:
        try:
            self.interpreter.validate_inspect(command, self._log.current_sequence)
            target = self._log.current_sequence if command.sequence is None else command.sequence
            snapshot = self.snapshot_at(target)
        except (CommandError, InvariantViolation) as e:
            return self._rejected(command, e)

        policy = (
            snapshot.policy(snapshot.active_policy)
            if snapshot.active_policy is not None
            else None
        )
        return CommandOutcome(
            command=command,
            status=OutcomeStatus.INSPECTED,
            sequence=self._log.current_sequence,
            snapshot_id=self._store.snapshot().snapshot_id,
            inspection=build_evaluation_request(snapshot, policy),
        )

    def _rejected(self, command, error) -> CommandOutcome:
        report = error.to_report()
        logger.warning(
            "command_rejected",
            kind=command.kind,
            category=report.category,
            reason=report.reason,
            detail=report.detail,
        )
        snapshot = self._store.snapshot()
        return CommandOutcome(
            command=command,
            status=OutcomeStatus.REJECTED,
            sequence=snapshot.sequence,
            snapshot_id=snapshot.snapshot_id,
            error=report,
        )

    def _terminate(self, reason: str) -> None:
        self._terminated = True
        logger.error("evaluator_unavailable", reason=reason, sequence=self.sequence)

    # --- Export ---

    def export(self) -> ScenarioExport:
        """Ordered (command, outcome) pairs for the whole session."""
        snapshot = self._store.snapshot()
        return ScenarioExport(
            steps=list(self._steps),
            final_sequence=snapshot.sequence,
            final_snapshot_id=snapshot.snapshot_id,
            exported_at=datetime.utcnow(),
        )

    def replay_export(
        self,
        export: ScenarioExport,
        run_checks: bool = False,
    ) -> List[CommandOutcome]:
        """
        Re-execute an exported scenario in this (fresh) session.

        Checks are skipped unless run_checks is set. Raises InvariantViolation
        if any replayed command ends in a different state than recorded.
        """
        if self._steps or self._log.last_sequence != EMPTY_SEQUENCE:
            raise ValueError("an export can only be replayed into a fresh session")

        outcomes = []
        for step in export.steps:
            if isinstance(step.command, CheckCommand) and not run_checks:
                continue
            outcome = self.execute(step.command)
            recorded = step.outcome
            if (
                outcome.status != recorded.status
                or outcome.sequence != recorded.sequence
                or outcome.snapshot_id != recorded.snapshot_id
            ):
                raise InvariantViolation(
                    "replay_determinism",
                    f"replaying {step.command.kind} ended at sequence {outcome.sequence} "
                    f"({outcome.status.value}), recorded {recorded.sequence} "
                    f"({recorded.status.value})",
                )
            outcomes.append(outcome)
        return outcomes
