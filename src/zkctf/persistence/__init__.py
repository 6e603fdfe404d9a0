"""Persistence — append-only submission log and on-disk proof artifacts."""

from zkctf.persistence.submission_log import SubmissionLog
from zkctf.persistence.proof_store import load_proof_artifact, load_proof_artifacts

__all__ = ["SubmissionLog", "load_proof_artifact", "load_proof_artifacts"]
