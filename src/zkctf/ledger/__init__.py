"""Ledger side — verifier backend, submission client and contract deployment."""

from zkctf.ledger.verifier import (
    ScoreboardVerifier,
    VerifierService,
    format_proof,
    proof_length,
    to_field_element,
)
from zkctf.ledger.submission import NonceAllocator, RetryPolicy, SubmissionClient
from zkctf.ledger.deploy import DeploymentRecord, deploy_scoreboard, load_contract_artifact

__all__ = [
    "ScoreboardVerifier",
    "VerifierService",
    "format_proof",
    "proof_length",
    "to_field_element",
    "NonceAllocator",
    "RetryPolicy",
    "SubmissionClient",
    "DeploymentRecord",
    "deploy_scoreboard",
    "load_contract_artifact",
]
