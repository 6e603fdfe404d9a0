"""zkctf — commit-reveal capture-the-flag pipeline with zero-knowledge proofs."""

__version__ = "0.1.0"
