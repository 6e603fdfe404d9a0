"""Error taxonomy for the proof pipeline.

Four failure families, one per stage:
1. EncodingError — invalid chunk count or a secret that does not fit the circuit.
2. ProverError — the prover backend exited non-zero, timed out, or wrote garbage.
3. SubmissionError — the verifier rejected the proof or the ledger call failed.
4. PersistenceError — an artifact file is missing or malformed.

Encoding and persistence errors propagate to the caller. Prover and
submission errors are caught at job/attempt granularity and recorded.
"""

from __future__ import annotations

from typing import Optional


class ZkCtfError(Exception):
    """Base class for all pipeline errors."""


class EncodingError(ZkCtfError):
    """Raised when a secret cannot be encoded into circuit chunks."""


class ProverError(ZkCtfError):
    """Raised when a prover invocation fails.

    Carries the failing stage ("witness" or "prove"), the process exit
    code when there is one, and whatever diagnostic output was captured.
    """

    def __init__(
        self,
        message: str,
        stage: str = "",
        returncode: Optional[int] = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.returncode = returncode
        self.output = output


class SubmissionError(ZkCtfError):
    """Raised when the verifier rejects a proof or the ledger call fails."""


class PersistenceError(ZkCtfError):
    """Raised when an artifact file cannot be read back.

    kind is one of "not_found", "parse_error" or "integrity".
    """

    NOT_FOUND = "not_found"
    PARSE_ERROR = "parse_error"
    INTEGRITY = "integrity"

    def __init__(self, message: str, kind: str = PARSE_ERROR) -> None:
        super().__init__(message)
        self.kind = kind
