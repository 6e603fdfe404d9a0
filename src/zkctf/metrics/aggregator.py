"""Metrics aggregator — benchmark summaries over recorded outcomes.

A summary is always derived: feed it the submission log (and, for
proof timing, the orchestrator's outcomes) and it computes the same
numbers every time. Nothing here is stored as a source of truth.

Conventions:
- Gas and latency averages are over successful submissions only.
- Success rate is 0.0 when nothing was attempted.
- Throughput is successful submissions per second of elapsed wall
  clock, and 0.0 when the elapsed time is zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from zkctf.models.proof import ProofOutcome
from zkctf.models.submission import SubmissionRecord


@dataclass(frozen=True)
class BenchmarkSummary:
    """Derived benchmark figures. Immutable and recomputable."""
    attempts: int
    successes: int
    failures: int
    success_rate: float
    total_gas: int
    avg_gas: float
    avg_latency_ms: float
    elapsed_ms: float
    throughput_per_s: float
    proofs_total: int = 0
    proofs_succeeded: int = 0
    proofs_failed: int = 0
    avg_generation_ms: float = 0.0
    avg_witness_ms: float = 0.0
    avg_prove_ms: float = 0.0

    def render(self) -> str:
        """Multi-line human-readable report."""
        lines = []
        if self.proofs_total:
            lines += [
                "========== Proof Generation ==========",
                f"  Proofs:              {self.proofs_succeeded}/{self.proofs_total} succeeded",
                f"  Avg generation time: {self.avg_generation_ms:.2f}ms",
                f"  Avg witness time:    {self.avg_witness_ms:.2f}ms",
                f"  Avg prove time:      {self.avg_prove_ms:.2f}ms",
            ]
        if self.attempts:
            lines += [
                "========== Submission Metrics ==========",
                f"  Attempts:            {self.attempts}",
                f"  Successful:          {self.successes}",
                f"  Failed:              {self.failures}",
                f"  Success rate:        {self.success_rate * 100:.2f}%",
                f"  Total gas used:      {self.total_gas}",
                f"  Avg gas per tx:      {self.avg_gas:.2f}",
                f"  Avg tx time:         {self.avg_latency_ms:.2f}ms",
                f"  Elapsed:             {self.elapsed_ms:.2f}ms",
                f"  Throughput:          {self.throughput_per_s:.2f} tx/s",
            ]
        if not lines:
            return "No proofs or submissions recorded."
        return "\n".join(lines)


def summarize(
    records: Sequence[SubmissionRecord],
    jobs: Iterable[ProofOutcome] = (),
    elapsed_ms: Optional[float] = None,
) -> BenchmarkSummary:
    """Compute a BenchmarkSummary.

    elapsed_ms defaults to the span of the records: first start to the
    latest end.
    """
    attempts = len(records)
    ok = [r for r in records if r.succeeded]
    successes = len(ok)

    total_gas = sum(r.gas_used or 0 for r in ok)
    avg_gas = total_gas / successes if successes else 0.0
    avg_latency = sum(r.duration_ms for r in ok) / successes if successes else 0.0

    if elapsed_ms is None:
        elapsed_ms = _span_ms(records)
    throughput = successes / (elapsed_ms / 1000) if elapsed_ms > 0 else 0.0

    outcomes = list(jobs)
    artifacts = [o for o in outcomes if o.succeeded]
    n_art = len(artifacts)

    return BenchmarkSummary(
        attempts=attempts,
        successes=successes,
        failures=attempts - successes,
        success_rate=successes / attempts if attempts else 0.0,
        total_gas=total_gas,
        avg_gas=avg_gas,
        avg_latency_ms=avg_latency,
        elapsed_ms=elapsed_ms,
        throughput_per_s=throughput,
        proofs_total=len(outcomes),
        proofs_succeeded=n_art,
        proofs_failed=len(outcomes) - n_art,
        avg_generation_ms=_mean(a.generation_duration_ms for a in artifacts),
        avg_witness_ms=_mean(a.witness_duration_ms for a in artifacts),
        avg_prove_ms=_mean(a.prove_duration_ms for a in artifacts),
    )


def transaction_table(records: Sequence[SubmissionRecord]) -> str:
    """One row per attempt, for debug output."""
    header = f"{'#':>3}  {'sub-flag':>8}  {'nonce':>6}  {'status':<8}  {'gas':>9}  {'time (ms)':>10}  detail"
    rows = [header, "-" * len(header)]
    for i, r in enumerate(records, 1):
        gas = "-" if r.gas_used is None else str(r.gas_used)
        sub_flag = "-" if r.sub_flag_id is None else str(r.sub_flag_id)
        detail = r.tx_hash or r.error or ""
        rows.append(
            f"{i:>3}  {sub_flag:>8}  {r.nonce:>6}  {r.status.value:<8}  "
            f"{gas:>9}  {r.duration_ms:>10.2f}  {detail}"
        )
    return "\n".join(rows)


def _span_ms(records: Sequence[SubmissionRecord]) -> float:
    if not records:
        return 0.0
    first = min(r.submitted_at for r in records)
    last = max(r.submitted_at + r.duration_ms / 1000 for r in records)
    return max(0.0, (last - first) * 1000)


def _mean(values: Iterable[float]) -> float:
    items = list(values)
    return sum(items) / len(items) if items else 0.0
