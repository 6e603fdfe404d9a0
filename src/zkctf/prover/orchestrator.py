"""Proof orchestrator — bounded-concurrency driver for the prover service.

For each pending job the orchestrator:
1. Encodes the secret into circuit chunks.
2. Writes input.json into the job's directory and computes the witness.
3. Generates the proof from the witness.

Jobs run on a fixed-size worker pool with a FIFO queue, so at most C
jobs are RUNNING at any instant and jobs are admitted in submission
order. Results come back in the order the jobs were given, whatever
order they finished in.

A failing job fails alone: the batch keeps going and the failure is
returned in that job's slot. Nothing is retried here; callers that
want a retry submit a fresh ProofJob.

Usage:
    orch = ProofOrchestrator(prover, Path("proofs"), chunk_count=4)
    outcomes = orch.run(jobs_for(store.sub_flags), concurrency_limit=4)
    artifacts = [o for o in outcomes if o.succeeded]
"""

from __future__ import annotations

import json
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from loguru import logger

from zkctf.crypto import chunking
from zkctf.crypto.commitment import index_of
from zkctf.errors import ProverError, ZkCtfError
from zkctf.models.proof import (
    JobState,
    ProofArtifact,
    ProofFailure,
    ProofJob,
    ProofOutcome,
)
from zkctf.models.subflag import SubFlag
from zkctf.prover.service import (
    INPUT_FILENAME,
    PROOF_FILENAME,
    PUBLIC_FILENAME,
    WITNESS_FILENAME,
    ProverService,
)


@dataclass(frozen=True)
class BatchStats:
    """Aggregate timing of the last run() call."""
    total: int
    succeeded: int
    failed: int
    wall_ms: float
    peak_active: int
    concurrency_limit: int


class ProofOrchestrator:
    """Schedules proof jobs onto a bounded worker pool.

    The active-job count and its peak are the only shared mutable
    state; both are updated under a lock by this instance only.
    """

    def __init__(
        self,
        prover: ProverService,
        proof_dir: Path,
        chunk_count: int = 4,
        chunk_width: int = chunking.DEFAULT_CHUNK_WIDTH,
        max_concurrency: Optional[int] = None,
        on_complete: Optional[Callable[[ProofJob, ProofOutcome], None]] = None,
    ) -> None:
        self._prover = prover
        self._proof_dir = Path(proof_dir)
        self._chunk_count = chunk_count
        self._chunk_width = chunk_width
        self._max_concurrency = max_concurrency or os.cpu_count() or 1
        self._on_complete = on_complete
        self._lock = threading.Lock()
        self._active = 0
        self._peak_active = 0
        self._last_run: Optional[BatchStats] = None

    # ------------------------------------------------------------------
    # Batch execution
    # ------------------------------------------------------------------

    def run(
        self,
        jobs: Sequence[ProofJob],
        concurrency_limit: Optional[int] = None,
    ) -> list[ProofOutcome]:
        """Run every job to a terminal state.

        Returns one ProofArtifact or ProofFailure per job, index-aligned
        with jobs.

        Raises:
            ValueError: If the limit is not positive, a job is not
                PENDING, or two jobs share a sub-flag id.
        """
        limit = self._max_concurrency if concurrency_limit is None else concurrency_limit
        if limit <= 0:
            raise ValueError(f"Concurrency limit must be positive, got {limit}")
        self._validate(jobs)

        with self._lock:
            self._active = 0
            self._peak_active = 0

        self._proof_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Running {len(jobs)} proof jobs (concurrency {limit})")

        outcomes: list[Optional[ProofOutcome]] = [None] * len(jobs)
        start = time.perf_counter()
        with ThreadPoolExecutor(max_workers=limit, thread_name_prefix="prover") as pool:
            futures = {pool.submit(self._execute, job): i for i, job in enumerate(jobs)}
            for future in as_completed(futures):
                i = futures[future]
                outcome = future.result()
                outcomes[i] = outcome
                if self._on_complete is not None:
                    self._on_complete(jobs[i], outcome)
        wall_ms = (time.perf_counter() - start) * 1000

        results = [o for o in outcomes if o is not None]
        succeeded = sum(1 for o in results if o.succeeded)
        self._last_run = BatchStats(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            wall_ms=wall_ms,
            peak_active=self._peak_active,
            concurrency_limit=limit,
        )
        logger.info(
            f"Proof batch done: {succeeded}/{len(results)} succeeded in {wall_ms:.2f}ms "
            f"(peak concurrency {self._peak_active})"
        )
        return results

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    @property
    def active_count(self) -> int:
        with self._lock:
            return self._active

    @property
    def peak_active(self) -> int:
        with self._lock:
            return self._peak_active

    @property
    def last_run(self) -> Optional[BatchStats]:
        return self._last_run

    def job_dir(self, job: ProofJob) -> Path:
        return self._proof_dir / f"proof_{job.sub_flag_id}"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _execute(self, job: ProofJob) -> ProofOutcome:
        """Run one job. Never raises: any backend exception becomes a ProofFailure."""
        job.transition(JobState.RUNNING)
        with self._lock:
            self._active += 1
            self._peak_active = max(self._peak_active, self._active)

        start = time.perf_counter()
        stage = "encode"
        witness_ms = 0.0
        try:
            job.chunk_set = chunking.encode(job.secret, self._chunk_count, self._chunk_width)

            work_dir = self.job_dir(job)
            work_dir.mkdir(parents=True, exist_ok=True)
            input_path = work_dir / INPUT_FILENAME
            witness_path = work_dir / WITNESS_FILENAME
            input_path.write_text(json.dumps(job.circuit_input()), encoding="utf-8")

            stage = "witness"
            t0 = time.perf_counter()
            self._prover.compute_witness(input_path, witness_path)
            witness_ms = (time.perf_counter() - t0) * 1000
            logger.debug(f"Witness {job.sub_flag_id}: {witness_ms:.2f}ms")

            stage = "prove"
            t0 = time.perf_counter()
            proof, public_signals = self._prover.generate_proof(
                witness_path,
                work_dir / PROOF_FILENAME,
                work_dir / PUBLIC_FILENAME,
            )
            prove_ms = (time.perf_counter() - t0) * 1000
            logger.debug(f"Proof {job.sub_flag_id}: {prove_ms:.2f}ms")
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            failed_stage = e.stage if isinstance(e, ProverError) and e.stage else stage
            if isinstance(e, (ZkCtfError, OSError, ValueError)):
                detail = str(e)
                if isinstance(e, ProverError) and e.output:
                    detail = f"{detail}: {e.output}"
                logger.warning(f"Proof {job.sub_flag_id} failed at {failed_stage}: {detail}")
            else:
                # Backend bug: still terminal, but keep the traceback.
                detail = f"{type(e).__name__}: {e}"
                logger.opt(exception=e).error(
                    f"Proof {job.sub_flag_id} crashed at {failed_stage}: {detail}"
                )
            job.transition(JobState.FAILED)
            self._release()
            return ProofFailure(
                sub_flag_id=job.sub_flag_id,
                error=detail,
                stage=failed_stage,
                duration_ms=duration_ms,
            )

        duration_ms = (time.perf_counter() - start) * 1000
        job.transition(JobState.SUCCEEDED)
        self._release()
        logger.info(f"Proof {job.sub_flag_id} completed in {duration_ms:.2f}ms")
        return ProofArtifact(
            sub_flag_id=job.sub_flag_id,
            proof=proof,
            public_signals=tuple(public_signals),
            generation_duration_ms=duration_ms,
            witness_duration_ms=witness_ms,
            prove_duration_ms=prove_ms,
            work_dir=work_dir,
        )

    def _release(self) -> None:
        with self._lock:
            self._active -= 1

    @staticmethod
    def _validate(jobs: Sequence[ProofJob]) -> None:
        seen: set[int] = set()
        for job in jobs:
            if job.state != JobState.PENDING:
                raise ValueError(
                    f"Job for sub-flag {job.sub_flag_id} is {job.state.value}, expected pending"
                )
            if job.sub_flag_id in seen:
                raise ValueError(f"Duplicate job for sub-flag {job.sub_flag_id}")
            seen.add(job.sub_flag_id)


def jobs_for(sub_flags: Iterable[SubFlag]) -> list[ProofJob]:
    """One pending job per sub-flag (organizer-side / benchmark runs)."""
    return [
        ProofJob(sub_flag_id=sf.id, secret=sf.secret, commitment=sf.commitment)
        for sf in sub_flags
    ]


def jobs_for_secrets(secrets: Iterable[str], commitments: Sequence[str]) -> list[ProofJob]:
    """Jobs for recovered secrets, matched against published commitments.

    Raises KeyError for a secret that opens no commitment.
    """
    jobs = []
    for secret in secrets:
        idx = index_of(commitments, secret)
        jobs.append(ProofJob(sub_flag_id=idx, secret=secret, commitment=commitments[idx]))
    return jobs
