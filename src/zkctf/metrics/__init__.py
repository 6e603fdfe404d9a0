"""Benchmark metrics derived from submission and proof outcomes."""

from zkctf.metrics.aggregator import BenchmarkSummary, summarize, transaction_table

__all__ = ["BenchmarkSummary", "summarize", "transaction_table"]
