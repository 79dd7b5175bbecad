"""
Evaluation Bridge — hands a snapshot to the external policy evaluator.

Receives a snapshot and the active policy, serializes them into the
evaluator's request document, invokes the evaluator and classifies the
response into a Verdict.

Behavioral Contract:
- Read-only: never touches the Entity Store or the Scenario Log
- One synchronous evaluator call per evaluate(), bounded by a timeout
- VALID / INVALID only for well-formed answers; anything else that keeps
  the question unanswered is EVALUATOR_ERROR
- A missing evaluator raises EvaluatorUnavailableError (fatal)
- No retries
"""

import json
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, Union

from pydantic import ValidationError

from justact_kernel.config.logging import get_logger
from justact_kernel.errors import EvaluatorUnavailableError
from justact_kernel.models.entities import Policy, Snapshot
from justact_kernel.models.verdict import (
    EvaluatorErrorReason,
    EvaluatorResponse,
    Verdict,
    VerdictKind,
)

logger = get_logger(__name__)

PROTOCOL_VERSION = "justact-scenario/1"

_STDERR_TAIL = 500


class EvaluationFailure(Exception):
    """Raised by an evaluator backend when it could not produce an answer."""

    def __init__(self, reason: EvaluatorErrorReason, detail: str):
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


class Evaluator(Protocol):
    """Takes the serialized request, returns the raw response (text or UTF-8 bytes)."""

    def __call__(self, request: str, timeout: Optional[float]) -> Union[str, bytes]:
        ...


def build_evaluation_request(snapshot: Snapshot, policy: Optional[Policy]) -> dict:
    """
    The request document for one snapshot under one policy.

    Statements carry their retraction markers; payloads, effects and rule
    text are passed through verbatim.
    """
    return {
        "protocol": PROTOCOL_VERSION,
        "sequence": snapshot.sequence,
        "snapshot_id": snapshot.snapshot_id,
        "time": snapshot.time,
        "policy": (
            {"name": policy.name, "rules": policy.rules} if policy is not None else None
        ),
        "agents": [
            {"name": a.name, "capabilities": list(a.capabilities)}
            for a in snapshot.agents
        ],
        "statements": [
            {
                "name": s.name,
                "agent": s.agent,
                "payload": s.payload,
                "asserted_at": s.asserted_at,
                "retracted": s.retracted,
                "retracted_at": s.retracted_at,
            }
            for s in snapshot.statements
        ],
        "agreements": [a.model_dump(mode="json") for a in snapshot.agreements],
        "enactments": [e.model_dump(mode="json") for e in snapshot.enactments],
    }


def serialize_request(snapshot: Snapshot, policy: Optional[Policy]) -> str:
    """Canonical JSON form of the request: the same snapshot always yields the same bytes."""
    return json.dumps(
        build_evaluation_request(snapshot, policy),
        sort_keys=True,
        separators=(",", ":"),
    )


class SubprocessEvaluator:
    """
    Runs the evaluator as a child process: request on stdin, response on stdout.
    """

    def __init__(
        self,
        command: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        if not command:
            raise ValueError("evaluator command cannot be empty")
        self.command = list(command)
        self.cwd = cwd
        self.env = dict(env) if env is not None else None

    def __call__(self, request: str, timeout: Optional[float]) -> str:
        try:
            proc = subprocess.run(
                self.command,
                input=request.encode("utf-8"),
                capture_output=True,
                timeout=timeout,
                cwd=self.cwd,
                env=self.env,
            )
        except OSError as e:
            raise EvaluatorUnavailableError(
                f"cannot start evaluator {self.command[0]!r}: {e}"
            ) from e
        except subprocess.TimeoutExpired:
            raise EvaluationFailure(
                EvaluatorErrorReason.TIMEOUT,
                f"evaluator did not answer within {timeout}s",
            )

        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace")
            raise EvaluationFailure(
                EvaluatorErrorReason.PROCESS_FAILURE,
                f"evaluator exited with status {proc.returncode}: "
                f"{stderr.strip()[-_STDERR_TAIL:]}",
            )
        try:
            return proc.stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EvaluationFailure(
                EvaluatorErrorReason.MALFORMED_RESPONSE,
                f"evaluator output is not UTF-8: {e.reason} at byte {e.start}",
            ) from e


class CallableEvaluator:
    """
    Calls an in-process evaluator library. The function receives the
    request document and returns the response document (dict, JSON text
    or JSON bytes).
    """

    def __init__(self, fn: Callable[[dict], Any]):
        self.fn = fn

    def __call__(self, request: str, timeout: Optional[float]) -> Union[str, bytes]:
        document = json.loads(request)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="justact-eval")
        future = executor.submit(self.fn, document)
        try:
            result = future.result(timeout=timeout)
        except FutureTimeoutError:
            raise EvaluationFailure(
                EvaluatorErrorReason.TIMEOUT,
                f"evaluator did not answer within {timeout}s",
            )
        except Exception as e:
            raise EvaluationFailure(
                EvaluatorErrorReason.PROCESS_FAILURE,
                f"evaluator raised {type(e).__name__}: {e}",
            ) from e
        finally:
            executor.shutdown(wait=False)

        if isinstance(result, (str, bytes)):
            return result
        try:
            return json.dumps(result)
        except (TypeError, ValueError) as e:
            raise EvaluationFailure(
                EvaluatorErrorReason.MALFORMED_RESPONSE,
                f"evaluator returned a non-serializable {type(result).__name__}",
            ) from e


class EvaluationBridge:
    """
    Builds evaluator requests from snapshots and classifies the answers.
    """

    def __init__(self, evaluator: Evaluator, timeout_seconds: Optional[float] = 30.0):
        self.evaluator = evaluator
        self.timeout_seconds = timeout_seconds

    def evaluate(
        self,
        snapshot: Snapshot,
        policy: Policy,
        timeout: Optional[float] = None,
    ) -> Verdict:
        """
        Evaluate a snapshot under a policy.

        Returns VALID, INVALID (with witness) or EVALUATOR_ERROR.
        """
        if timeout is None:
            timeout = self.timeout_seconds
        request = serialize_request(snapshot, policy)

        start = time.monotonic()
        try:
            raw = self.evaluator(request, timeout)
        except EvaluationFailure as e:
            elapsed = time.monotonic() - start
            logger.warning(
                "evaluator_failed",
                reason=e.reason.value,
                detail=e.detail,
                sequence=snapshot.sequence,
                policy=policy.name,
            )
            return self._error_verdict(snapshot, policy, e.reason, e.detail, elapsed)
        elapsed = time.monotonic() - start

        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            response = EvaluatorResponse.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "evaluator_response_malformed",
                errors=e.error_count(),
                sequence=snapshot.sequence,
                policy=policy.name,
            )
            return self._error_verdict(
                snapshot,
                policy,
                EvaluatorErrorReason.MALFORMED_RESPONSE,
                f"could not read evaluator response: {e.errors()[0]['msg']}",
                elapsed,
            )
        except UnicodeDecodeError as e:
            logger.warning(
                "evaluator_response_malformed",
                errors=1,
                sequence=snapshot.sequence,
                policy=policy.name,
            )
            return self._error_verdict(
                snapshot,
                policy,
                EvaluatorErrorReason.MALFORMED_RESPONSE,
                f"evaluator response is not UTF-8: {e.reason}",
                elapsed,
            )

        kind = VerdictKind.VALID if response.verdict == "valid" else VerdictKind.INVALID
        logger.info(
            "evaluator_answered",
            verdict=kind.value,
            sequence=snapshot.sequence,
            policy=policy.name,
            duration_seconds=round(elapsed, 3),
        )
        return Verdict(
            kind=kind,
            policy_name=policy.name,
            sequence=snapshot.sequence,
            snapshot_id=snapshot.snapshot_id,
            witness=response.witness if kind == VerdictKind.INVALID else None,
            artifact=response.artifact,
            evaluated_at=datetime.utcnow(),
            duration_seconds=round(elapsed, 3),
        )

    def _error_verdict(
        self,
        snapshot: Snapshot,
        policy: Policy,
        reason: EvaluatorErrorReason,
        detail: str,
        elapsed: float,
    ) -> Verdict:
        return Verdict(
            kind=VerdictKind.EVALUATOR_ERROR,
            policy_name=policy.name,
            sequence=snapshot.sequence,
            snapshot_id=snapshot.snapshot_id,
            error_reason=reason,
            error_detail=detail,
            evaluated_at=datetime.utcnow(),
            duration_seconds=round(elapsed, 3),
        )
