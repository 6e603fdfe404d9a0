"""Submission client — sends proof artifacts to the verifier service.

Every attempt produces exactly one SubmissionRecord, appended to the
client's append-only SubmissionLog in attempt order. submit() never
retries: a rejection, a network error or a timeout is recorded as a
FAILED attempt and handed back. Resubmission is the caller's decision
(submit_with_retry() packages the common case).

Throttling:
- Sequential mode enforces a minimum gap (default 100ms) between the
  starts of consecutive submissions.
- Parallel mode issues submissions back to back from a small thread
  pool.

Nonces are allocated by the client from a monotonic counter. A nonce
that has already been used is a conflict and fails that attempt.
"""

from __future__ import annotations

import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from loguru import logger

from zkctf.errors import SubmissionError
from zkctf.ledger.verifier import VerifierService, format_proof, to_field_element
from zkctf.models.proof import ProofArtifact
from zkctf.models.submission import SubmissionRecord, SubmissionStatus
from zkctf.persistence.submission_log import SubmissionLog


DEFAULT_SUBMIT_DELAY_MS = 100.0


class NonceAllocator:
    """Monotonic nonce source with conflict detection.

    allocate() hands out the next unused nonce. reserve() claims a
    caller-chosen nonce and fails if it was already handed out or
    claimed. Thread-safe.
    """

    def __init__(self, start: int = 1) -> None:
        self._next = start
        self._used: set[int] = set()
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            while self._next in self._used:
                self._next += 1
            nonce = self._next
            self._used.add(nonce)
            self._next += 1
            return nonce

    def reserve(self, nonce: int) -> int:
        """Claim a specific nonce.

        Raises:
            SubmissionError: If the nonce is negative or already used.
        """
        if nonce < 0:
            raise SubmissionError(f"Nonce must be non-negative, got {nonce}")
        with self._lock:
            if nonce in self._used:
                raise SubmissionError(f"Nonce conflict: {nonce} already used")
            self._used.add(nonce)
            if nonce >= self._next:
                self._next = nonce + 1
            return nonce

    def peek(self) -> int:
        """The nonce allocate() would return next."""
        with self._lock:
            candidate = self._next
            while candidate in self._used:
                candidate += 1
            return candidate


@dataclass(frozen=True)
class RetryPolicy:
    """Caller-level resubmission policy.

    backoff is "fixed", "exponential" or "jitter"; delays are in
    seconds and capped at max_delay_s.
    """
    max_attempts: int = 3
    backoff: str = "exponential"
    base_delay_s: float = 0.5
    max_delay_s: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")
        if self.backoff not in ("fixed", "exponential", "jitter"):
            raise ValueError(f"Unknown backoff strategy: {self.backoff!r}")

    def delay(self, attempt: int) -> float:
        """Delay before retry number attempt (0-based)."""
        if self.backoff == "fixed":
            d = self.base_delay_s
        elif self.backoff == "exponential":
            d = self.base_delay_s * (2 ** attempt)
        else:
            d = self.base_delay_s * random.uniform(1, 2 ** attempt)
        return min(d, self.max_delay_s)


class SubmissionClient:
    """Submits ProofArtifacts and records every attempt.

    Usage:
        client = SubmissionClient(verifier, proof_system="plonk")
        records = client.submit_batch(artifacts, start_nonce=1)
        summary = summarize(client.log.records())
    """

    def __init__(
        self,
        verifier: VerifierService,
        proof_system: str = "plonk",
        submit_delay_ms: float = DEFAULT_SUBMIT_DELAY_MS,
        max_workers: int = 4,
        log: Optional[SubmissionLog] = None,
        nonces: Optional[NonceAllocator] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if submit_delay_ms < 0:
            raise ValueError(f"submit_delay_ms must be >= 0, got {submit_delay_ms}")
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self._verifier = verifier
        self._proof_system = proof_system
        self._delay_s = submit_delay_ms / 1000
        self._max_workers = max_workers
        self._log = log if log is not None else SubmissionLog()
        self._nonces = nonces if nonces is not None else NonceAllocator()
        self._clock = clock
        self._sleep = sleep
        self._throttle_lock = threading.Lock()
        self._last_start: Optional[float] = None

    @property
    def log(self) -> SubmissionLog:
        return self._log

    @property
    def nonces(self) -> NonceAllocator:
        return self._nonces

    # ------------------------------------------------------------------
    # Single submissions
    # ------------------------------------------------------------------

    def submit(
        self,
        artifact: ProofArtifact,
        nonce: Optional[int] = None,
        sequential: bool = True,
    ) -> SubmissionRecord:
        """Submit one artifact once and record the attempt."""
        started_at = self._mark_start(sequential)

        try:
            nonce = self._nonces.allocate() if nonce is None else self._nonces.reserve(nonce)
        except SubmissionError as e:
            return self._record(
                SubmissionRecord(
                    nonce=-1 if nonce is None else nonce,
                    gas_used=None,
                    duration_ms=0.0,
                    status=SubmissionStatus.FAILED,
                    error=str(e),
                    sub_flag_id=artifact.sub_flag_id,
                    submitted_at=started_at,
                )
            )

        t0 = time.perf_counter()
        try:
            proof = format_proof(artifact.proof, self._proof_system)
            signals = [to_field_element(s) for s in artifact.public_signals]
            receipt = self._verifier.verify_and_score(
                artifact.sub_flag_id, nonce, proof, signals
            )
            if not receipt.success:
                raise SubmissionError("Verifier reported an unsuccessful call")
        except Exception as e:
            duration_ms = (time.perf_counter() - t0) * 1000
            error = str(e)
            if not isinstance(e, (SubmissionError, ValueError, OSError)):
                error = f"{type(e).__name__}: {e}"
            logger.warning(
                f"Submission failed: sub-flag {artifact.sub_flag_id} nonce {nonce}: {error}"
            )
            return self._record(
                SubmissionRecord(
                    nonce=nonce,
                    gas_used=None,
                    duration_ms=duration_ms,
                    status=SubmissionStatus.FAILED,
                    error=error,
                    sub_flag_id=artifact.sub_flag_id,
                    submitted_at=started_at,
                )
            )

        duration_ms = (time.perf_counter() - t0) * 1000
        logger.info(
            f"Submitted sub-flag {artifact.sub_flag_id} nonce {nonce}: "
            f"gas={receipt.gas_used} in {duration_ms:.2f}ms"
        )
        return self._record(
            SubmissionRecord(
                nonce=nonce,
                gas_used=receipt.gas_used,
                duration_ms=duration_ms,
                status=SubmissionStatus.SUCCESS,
                sub_flag_id=artifact.sub_flag_id,
                submitted_at=started_at,
                tx_hash=receipt.tx_hash,
            )
        )

    def submit_with_retry(
        self,
        artifact: ProofArtifact,
        policy: RetryPolicy = RetryPolicy(),
        sequential: bool = True,
    ) -> list[SubmissionRecord]:
        """Resubmit with fresh nonces until success or attempts run out.

        Returns the record of every attempt made.
        """
        records: list[SubmissionRecord] = []
        for attempt in range(policy.max_attempts):
            record = self.submit(artifact, sequential=sequential)
            records.append(record)
            if record.succeeded:
                break
            if attempt + 1 < policy.max_attempts:
                delay = policy.delay(attempt)
                logger.info(
                    f"Retrying sub-flag {artifact.sub_flag_id} in {delay:.2f}s "
                    f"(attempt {attempt + 2}/{policy.max_attempts})"
                )
                self._sleep(delay)
        return records

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def submit_batch(
        self,
        artifacts: Sequence[ProofArtifact],
        start_nonce: Optional[int] = None,
        parallel: bool = False,
    ) -> list[SubmissionRecord]:
        """Submit artifacts with monotonically increasing nonces.

        Returns one record per artifact, in artifact order.
        """
        first = self._nonces.peek() if start_nonce is None else start_nonce
        nonces = [first + i for i in range(len(artifacts))]
        mode = "parallel" if parallel else "sequential"
        logger.info(f"Submitting {len(artifacts)} proofs ({mode}), nonces from {first}")

        if not parallel:
            return [
                self.submit(artifact, nonce=nonce, sequential=True)
                for artifact, nonce in zip(artifacts, nonces)
            ]

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="submit") as pool:
            futures = [
                pool.submit(self.submit, artifact, nonce, False)
                for artifact, nonce in zip(artifacts, nonces)
            ]
            return [f.result() for f in futures]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _mark_start(self, sequential: bool) -> float:
        """Stamp this attempt's start, first waiting out the gap if sequential.

        The wait and the stamp happen under one lock, so concurrent
        sequential callers are spaced by the full gap.
        """
        with self._throttle_lock:
            last = self._last_start
            if sequential and last is not None and self._delay_s > 0:
                wait = self._delay_s - (self._clock() - last)
                if wait > 0:
                    self._sleep(wait)
            started_at = self._clock()
            self._last_start = started_at
            return started_at

    def _record(self, record: SubmissionRecord) -> SubmissionRecord:
        self._log.append(record)
        return record
