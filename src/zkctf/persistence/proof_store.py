"""Reads per-job proof directories back into ProofArtifacts.

Layout written by the orchestrator and the prover:
    <proof_dir>/proof_<id>/input.json
    <proof_dir>/proof_<id>/witness.wtns
    <proof_dir>/proof_<id>/proof.json
    <proof_dir>/proof_<id>/public.json
"""

from __future__ import annotations

import re
from pathlib import Path

from loguru import logger

from zkctf.errors import PersistenceError, ProverError
from zkctf.models.proof import ProofArtifact
from zkctf.prover.service import PROOF_FILENAME, PUBLIC_FILENAME, read_proof_files


_JOB_DIR = re.compile(r"^proof_(\d+)$")


def load_proof_artifact(job_dir: Path) -> ProofArtifact:
    """Load one job directory.

    Raises:
        PersistenceError: If the directory name carries no sub-flag id
            or the proof files are missing or malformed.
    """
    match = _JOB_DIR.match(job_dir.name)
    if match is None:
        raise PersistenceError(f"Not a proof directory: {job_dir}")
    try:
        proof, public_signals = read_proof_files(
            job_dir / PROOF_FILENAME, job_dir / PUBLIC_FILENAME
        )
    except ProverError as e:
        kind = (
            PersistenceError.NOT_FOUND
            if not (job_dir / PROOF_FILENAME).exists()
            else PersistenceError.PARSE_ERROR
        )
        raise PersistenceError(f"{job_dir}: {e}", kind=kind) from e
    return ProofArtifact(
        sub_flag_id=int(match.group(1)),
        proof=proof,
        public_signals=tuple(public_signals),
        generation_duration_ms=0.0,
        work_dir=job_dir,
    )


def load_proof_artifacts(proof_dir: Path, skip_invalid: bool = True) -> list[ProofArtifact]:
    """Load every proof_<id> directory under proof_dir, ordered by id.

    With skip_invalid, unreadable directories are logged and skipped
    (e.g. a job that failed before writing its proof).
    """
    if not proof_dir.is_dir():
        raise PersistenceError(
            f"Proof directory not found: {proof_dir}",
            kind=PersistenceError.NOT_FOUND,
        )

    job_dirs = sorted(
        (p for p in proof_dir.iterdir() if p.is_dir() and _JOB_DIR.match(p.name)),
        key=lambda p: int(p.name.split("_", 1)[1]),
    )
    artifacts = []
    for job_dir in job_dirs:
        try:
            artifacts.append(load_proof_artifact(job_dir))
        except PersistenceError as e:
            if not skip_invalid:
                raise
            logger.warning(f"Skipping {job_dir.name}: {e}")
    return artifacts
