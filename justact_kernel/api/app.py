"""
JustAct Scenario API — FastAPI endpoints.

Exposes one scenario session to a driver via a REST API for:
- Command execution (single commands and pre-parsed scripts)
- Validity checks and rollback
- Snapshot inspection
- Scenario log queries and integrity verification
- Scenario export and replay
"""

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from justact_kernel.config.logging import configure_logging
from justact_kernel.config.settings import JustActSettings
from justact_kernel.errors import (
    CommandError,
    EvaluatorUnavailableError,
    InvariantViolation,
    SessionTerminatedError,
)
from justact_kernel.interpreter.interpreter import parse_command
from justact_kernel.models.commands import CheckCommand, RollbackCommand
from justact_kernel.models.outcome import ScenarioExport
from justact_kernel.session.controller import SessionController


# --- Request/Response Models ---

class ScriptRequest(BaseModel):
    commands: List[Dict[str, Any]]
    stop_on_error: bool = False


class CheckRequest(BaseModel):
    timeout_seconds: Optional[float] = None


class ReplayRequest(BaseModel):
    export: ScenarioExport
    run_checks: bool = False


# --- Application Factory ---

def create_app(
    session: Optional[SessionController] = None,
    settings: Optional[JustActSettings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="JustAct Scenario API",
        description="Scripted multi-agent scenarios checked against a declarative policy",
        version="0.1.0",
    )

    if session is None:
        settings = settings or JustActSettings()
        configure_logging(settings.log_level, settings.log_json)
        session = SessionController(config=settings.to_session_config())

    app.state.session = session

    def _parse(document: Dict[str, Any]):
        try:
            return parse_command(document)
        except CommandError as e:
            raise HTTPException(422, e.to_report().model_dump())

    def _run(command):
        try:
            return session.execute(command)
        except (EvaluatorUnavailableError, SessionTerminatedError) as e:
            raise HTTPException(503, str(e))

    # === COMMANDS ===

    @app.post("/commands")
    def execute_command(document: Dict[str, Any]):
        """Execute one command document."""
        outcome = _run(_parse(document))
        return outcome.model_dump(mode="json")

    @app.post("/script")
    def execute_script(req: ScriptRequest):
        """Execute a pre-parsed script, in order."""
        commands = [_parse(doc) for doc in req.commands]
        try:
            outcomes = session.run_script(commands, stop_on_error=req.stop_on_error)
        except (EvaluatorUnavailableError, SessionTerminatedError) as e:
            raise HTTPException(503, str(e))
        return [o.model_dump(mode="json") for o in outcomes]

    @app.post("/check")
    def check_scenario(req: Optional[CheckRequest] = None):
        """Evaluate the current snapshot under the active policy."""
        timeout = req.timeout_seconds if req is not None else None
        outcome = _run(CheckCommand(timeout_seconds=timeout))
        return outcome.model_dump(mode="json")

    @app.post("/rollback/{sequence}")
    def rollback(sequence: int):
        """Discard every log entry after `sequence`."""
        outcome = _run(RollbackCommand(sequence=sequence))
        return outcome.model_dump(mode="json")

    # === SNAPSHOTS ===

    @app.get("/snapshot")
    def get_snapshot():
        """Current snapshot."""
        return session.snapshot().model_dump(mode="json")

    @app.get("/snapshot/{sequence}")
    def get_snapshot_at(sequence: int):
        """Snapshot re-derived at an earlier sequence."""
        try:
            snapshot = session.snapshot_at(sequence)
        except ValueError:
            raise HTTPException(404, "Sequence not found")
        return snapshot.model_dump(mode="json")

    # === SCENARIO LOG ===

    @app.get("/log")
    def get_log(from_sequence: int = 0, to_sequence: Optional[int] = None):
        """Live log entries, oldest first."""
        entries = session.log.entries(from_sequence, to_sequence)
        return [e.model_dump(mode="json") for e in entries]

    @app.get("/log/verify")
    def verify_log():
        """Verify chain integrity."""
        return {
            "integrity_valid": session.log.verify_chain_integrity(),
            "total_entries": session.log.count(),
            "retained_entries": session.log.last_sequence + 1,
        }

    @app.get("/checks")
    def get_checks():
        """Every verdict produced so far."""
        return [v.model_dump(mode="json") for v in session.verdicts]

    # === EXPORT ===

    @app.get("/export")
    def export_scenario():
        """Ordered (command, outcome) pairs for the whole session."""
        return session.export().model_dump(mode="json")

    @app.post("/export/replay")
    def replay_export(req: ReplayRequest):
        """Replay an exported scenario into this (fresh) session."""
        try:
            outcomes = session.replay_export(req.export, run_checks=req.run_checks)
        except ValueError as e:
            raise HTTPException(409, str(e))
        except InvariantViolation as e:
            raise HTTPException(409, e.to_report().model_dump())
        except (EvaluatorUnavailableError, SessionTerminatedError) as e:
            raise HTTPException(503, str(e))
        return [o.model_dump(mode="json") for o in outcomes]

    return app
