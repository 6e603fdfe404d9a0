"""Sub-flag and commitment artifact models.

A sub-flag is a secret token whose possession a participant proves
without revealing it. The organizer publishes only the commitment.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SubFlag:
    """A secret token and its public commitment.

    Immutable once created. Owned by the CommitmentStore; proof jobs
    refer to it by id.
    """
    id: int
    secret: str
    commitment: str  # 0x-prefixed keccak-256 hex digest


@dataclass(frozen=True)
class CommitmentArtifact:
    """Contents of the commitment artifact file.

    The public part (commitments, master_key_commitment) is what gets
    deployed. Secrets and the master key are present only on the
    organizer's copy.
    """
    n: int
    commitments: tuple[str, ...]
    master_key_commitment: str
    sub_flags: Optional[tuple[str, ...]] = None
    master_key: Optional[str] = None

    @property
    def has_secrets(self) -> bool:
        return self.sub_flags is not None

    def to_json_dict(self, include_secrets: bool = True) -> dict:
        """Render in the on-disk camelCase layout."""
        data: dict = {"N": self.n}
        if include_secrets and self.sub_flags is not None:
            data["subFlags"] = list(self.sub_flags)
        data["commitments"] = list(self.commitments)
        if include_secrets and self.master_key is not None:
            data["masterKey"] = self.master_key
        data["masterKeyCommitment"] = self.master_key_commitment
        return data
