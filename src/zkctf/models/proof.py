"""Proof job lifecycle models.

Job state machine (fail-closed, any transition not listed is rejected):
    PENDING → RUNNING
    RUNNING → SUCCEEDED
    RUNNING → FAILED

SUCCEEDED and FAILED are terminal. A SUCCEEDED job yields exactly one
ProofArtifact; a FAILED job yields exactly one ProofFailure.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union


class JobState(str, enum.Enum):
    """Lifecycle state of a proof job."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


_TRANSITIONS: set[tuple[JobState, JobState]] = {
    (JobState.PENDING, JobState.RUNNING),
    (JobState.RUNNING, JobState.SUCCEEDED),
    (JobState.RUNNING, JobState.FAILED),
}


class TransitionError(Exception):
    """Raised when a job state transition is not allowed."""


@dataclass
class ProofJob:
    """A single unit of proving work for one sub-flag.

    The chunk set is filled in by the orchestrator when the job runs.
    State changes go through transition(); only the orchestrator
    calls it.
    """
    sub_flag_id: int
    secret: str
    commitment: str
    chunk_set: list[str] = field(default_factory=list)
    state: JobState = JobState.PENDING

    def transition(self, target: JobState) -> None:
        if (self.state, target) not in _TRANSITIONS:
            raise TransitionError(
                f"Illegal job transition for sub-flag {self.sub_flag_id}: "
                f"{self.state.value} → {target.value}"
            )
        self.state = target

    def circuit_input(self) -> dict[str, Any]:
        """Circuit input document written to input.json."""
        return {
            "subFlagChunk": list(self.chunk_set),
            "commitment": circuit_commitment(self.commitment),
        }


@dataclass(frozen=True)
class ProofArtifact:
    """A generated proof plus its public signals. Immutable."""
    sub_flag_id: int
    proof: dict[str, Any]
    public_signals: tuple[str, ...]
    generation_duration_ms: float
    witness_duration_ms: float = 0.0
    prove_duration_ms: float = 0.0
    work_dir: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True)
class ProofFailure:
    """Diagnostic record for a job that ended FAILED."""
    sub_flag_id: int
    error: str
    stage: str = ""
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return False


ProofOutcome = Union[ProofArtifact, ProofFailure]


def circuit_commitment(commitment: str | int) -> str:
    """Render a commitment as the decimal string the circuit expects.

    Hex digests ("0x...") are converted; decimal strings and ints pass
    through.
    """
    if isinstance(commitment, int):
        return str(commitment)
    text = commitment.strip()
    if text.lower().startswith("0x"):
        return str(int(text, 16))
    return str(int(text))
