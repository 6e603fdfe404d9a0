"""Submission attempt models."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional


class SubmissionStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class SubmissionRecord:
    """Outcome of exactly one submission attempt.

    submitted_at is the clock reading when the attempt started; it is
    what the sequential throttle is measured against.
    """
    nonce: int
    gas_used: Optional[int]
    duration_ms: float
    status: SubmissionStatus
    error: Optional[str] = None
    sub_flag_id: Optional[int] = None
    submitted_at: float = 0.0
    tx_hash: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SubmissionStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "nonce": self.nonce,
            "gas_used": self.gas_used,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "error": self.error,
            "sub_flag_id": self.sub_flag_id,
            "submitted_at": self.submitted_at,
            "tx_hash": self.tx_hash,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> SubmissionRecord:
        return SubmissionRecord(
            nonce=int(data["nonce"]),
            gas_used=None if data.get("gas_used") is None else int(data["gas_used"]),
            duration_ms=float(data["duration_ms"]),
            status=SubmissionStatus(data["status"]),
            error=data.get("error"),
            sub_flag_id=data.get("sub_flag_id"),
            submitted_at=float(data.get("submitted_at", 0.0)),
            tx_hash=data.get("tx_hash"),
        )


@dataclass(frozen=True)
class VerifierReceipt:
    """What the verifier reports back for a confirmed call."""
    gas_used: int
    success: bool
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
