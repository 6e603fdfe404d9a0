"""Proof generation — prover backends and the bounded-concurrency orchestrator."""

from zkctf.prover.service import InProcessProver, ProverService, SnarkjsProver
from zkctf.prover.orchestrator import BatchStats, ProofOrchestrator, jobs_for, jobs_for_secrets

__all__ = [
    "InProcessProver",
    "ProverService",
    "SnarkjsProver",
    "BatchStats",
    "ProofOrchestrator",
    "jobs_for",
    "jobs_for_secrets",
]
