"""Tests for the metrics aggregator — proves summaries are pure and handle empty input."""

import pytest

from zkctf.metrics.aggregator import BenchmarkSummary, summarize, transaction_table
from zkctf.models.proof import ProofArtifact, ProofFailure
from zkctf.models.submission import SubmissionRecord, SubmissionStatus


def _ok(nonce: int, gas: int, ms: float, at: float) -> SubmissionRecord:
    return SubmissionRecord(
        nonce=nonce, gas_used=gas, duration_ms=ms,
        status=SubmissionStatus.SUCCESS, submitted_at=at, tx_hash=f"0x{nonce:02x}",
    )


def _failed(nonce: int, at: float) -> SubmissionRecord:
    return SubmissionRecord(
        nonce=nonce, gas_used=None, duration_ms=5.0,
        status=SubmissionStatus.FAILED, error="revert", submitted_at=at,
    )


@pytest.fixture
def records() -> list[SubmissionRecord]:
    return [_ok(1, 100, 10.0, 0.0), _failed(2, 0.1), _ok(3, 300, 30.0, 0.2)]


class TestSummarize:
    def test_counts_and_rates(self, records) -> None:
        s = summarize(records)
        assert (s.attempts, s.successes, s.failures) == (3, 2, 1)
        assert s.success_rate == pytest.approx(2 / 3)

    def test_gas_over_successes(self, records) -> None:
        s = summarize(records)
        assert s.total_gas == 400
        assert s.avg_gas == 200
        assert s.avg_latency_ms == 20.0

    def test_elapsed_from_record_span(self, records) -> None:
        # first start 0.0s, last end 0.2s + 30ms
        assert summarize(records).elapsed_ms == pytest.approx(230.0)

    def test_explicit_elapsed(self, records) -> None:
        s = summarize(records, elapsed_ms=1000.0)
        assert s.elapsed_ms == 1000.0
        assert s.throughput_per_s == pytest.approx(2.0)

    def test_idempotent(self, records) -> None:
        assert summarize(records) == summarize(records)
        assert summarize(records) == summarize(list(records))

    def test_zero_attempts(self) -> None:
        s = summarize([])
        assert s.attempts == 0
        assert s.success_rate == 0.0
        assert s.avg_gas == 0.0
        assert s.throughput_per_s == 0.0

    def test_zero_elapsed(self, records) -> None:
        assert summarize(records, elapsed_ms=0.0).throughput_per_s == 0.0

    def test_proof_timings(self) -> None:
        outcomes = [
            ProofArtifact(0, {}, ("1",), 100.0, witness_duration_ms=20.0, prove_duration_ms=80.0),
            ProofArtifact(1, {}, ("1",), 300.0, witness_duration_ms=40.0, prove_duration_ms=260.0),
            ProofFailure(2, "boom", stage="witness"),
        ]
        s = summarize([], jobs=outcomes)
        assert (s.proofs_total, s.proofs_succeeded, s.proofs_failed) == (3, 2, 1)
        assert s.avg_generation_ms == 200.0
        assert s.avg_witness_ms == 30.0
        assert s.avg_prove_ms == 170.0

    def test_summary_is_frozen(self, records) -> None:
        s = summarize(records)
        with pytest.raises(AttributeError):
            s.attempts = 0


class TestRendering:
    def test_render_mentions_rate(self, records) -> None:
        text = summarize(records).render()
        assert "Success rate:        66.67%" in text
        assert "Total gas used:      400" in text

    def test_render_empty(self) -> None:
        assert summarize([]).render() == "No proofs or submissions recorded."

    def test_transaction_table(self, records) -> None:
        lines = transaction_table(records).splitlines()
        assert len(lines) == 2 + 3
        assert "revert" in lines[3]
        assert "0x01" in lines[2]

    def test_summary_type(self, records) -> None:
        assert isinstance(summarize(records), BenchmarkSummary)
