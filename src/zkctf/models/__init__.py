"""Data models for the proof pipeline."""

from zkctf.models.subflag import CommitmentArtifact, SubFlag
from zkctf.models.proof import (
    JobState,
    ProofArtifact,
    ProofFailure,
    ProofJob,
    ProofOutcome,
    TransitionError,
)
from zkctf.models.submission import (
    SubmissionRecord,
    SubmissionStatus,
    VerifierReceipt,
)

__all__ = [
    "CommitmentArtifact",
    "SubFlag",
    "JobState",
    "ProofArtifact",
    "ProofFailure",
    "ProofJob",
    "ProofOutcome",
    "TransitionError",
    "SubmissionRecord",
    "SubmissionStatus",
    "VerifierReceipt",
]
