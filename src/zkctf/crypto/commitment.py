"""Commitment store — sub-flag generation, commitments, and the artifact file.

The organizer generates N random sub-flags, commits to each one with
keccak-256 over its UTF-8 bytes, and writes everything to a JSON
artifact. The public part of that artifact (commitments and master key
commitment) is what the scoreboard is deployed with.

keccak-256 is a placeholder commitment: it is what the scoreboard
stores, not a circuit-friendly hash.

Usage:
    store = CommitmentStore.generate(4, master_key="...")
    store.save(Path("ctf_data.json"))

    store = CommitmentStore.load(Path("ctf_data.json"))
    idx = store.index_of("CTF-4f2a...")
"""

from __future__ import annotations

import json
import secrets
import time
from pathlib import Path
from typing import Any, Optional, Sequence

from loguru import logger
from web3 import Web3

from zkctf.config import DEFAULT_MASTER_KEY
from zkctf.errors import PersistenceError
from zkctf.models.subflag import CommitmentArtifact, SubFlag


SUB_FLAG_PREFIX = "CTF-"
SUB_FLAG_RANDOM_BYTES = 12  # 24 hex chars


def commit(secret: str) -> str:
    """Commit to a secret: 0x-prefixed keccak-256 of its UTF-8 bytes."""
    return Web3.to_hex(Web3.keccak(secret.encode("utf-8")))


def random_sub_flag() -> str:
    """A fresh sub-flag from the OS CSPRNG."""
    return SUB_FLAG_PREFIX + secrets.token_hex(SUB_FLAG_RANDOM_BYTES)


class CommitmentStore:
    """Source of truth for sub-flags and their commitments.

    Records are immutable; the store never changes after construction.
    """

    def __init__(
        self,
        sub_flags: Sequence[SubFlag],
        master_key: Optional[str] = DEFAULT_MASTER_KEY,
        master_key_commitment: Optional[str] = None,
    ) -> None:
        self._sub_flags = tuple(sub_flags)
        self._master_key = master_key
        if master_key_commitment is None:
            if master_key is None:
                raise ValueError("Either master_key or master_key_commitment is required")
            master_key_commitment = commit(master_key)
        self._master_key_commitment = master_key_commitment

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def generate(
        cls,
        count: int,
        master_key: str = DEFAULT_MASTER_KEY,
    ) -> CommitmentStore:
        """Generate count random sub-flags and commit to each."""
        if count <= 0:
            raise ValueError(f"Sub-flag count must be positive, got {count}")

        start = time.perf_counter()
        sub_flags = []
        for i in range(count):
            secret = random_sub_flag()
            sub_flags.append(SubFlag(id=i, secret=secret, commitment=commit(secret)))
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"Generated {count} sub-flags in {elapsed_ms:.2f}ms "
            f"({elapsed_ms / count:.4f}ms per sub-flag)"
        )
        return cls(sub_flags, master_key=master_key)

    @classmethod
    def load(cls, path: Path) -> CommitmentStore:
        """Reconstitute a store from an organizer artifact (with secrets).

        Fail-closed: every stored commitment is recomputed from its
        secret and must match.

        Raises:
            PersistenceError: If the file is missing, malformed, carries
                no secrets, or a commitment does not match its secret.
        """
        artifact = load_artifact(path)
        if artifact.sub_flags is None:
            raise PersistenceError(
                f"Commitment artifact {path} carries no sub-flag secrets",
                kind=PersistenceError.PARSE_ERROR,
            )

        sub_flags = []
        for i, (secret, stored) in enumerate(zip(artifact.sub_flags, artifact.commitments)):
            expected = commit(secret)
            if stored.lower() != expected:
                raise PersistenceError(
                    f"Integrity check failed for sub-flag {i} in {path}: "
                    f"stored {stored} != computed {expected}",
                    kind=PersistenceError.INTEGRITY,
                )
            sub_flags.append(SubFlag(id=i, secret=secret, commitment=expected))

        master_key = artifact.master_key
        if master_key is not None and commit(master_key) != artifact.master_key_commitment.lower():
            raise PersistenceError(
                f"Integrity check failed for master key in {path}",
                kind=PersistenceError.INTEGRITY,
            )

        return cls(
            sub_flags,
            master_key=artifact.master_key,
            master_key_commitment=artifact.master_key_commitment,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def sub_flags(self) -> list[SubFlag]:
        return list(self._sub_flags)

    @property
    def commitments(self) -> list[str]:
        return [sf.commitment for sf in self._sub_flags]

    @property
    def master_key_commitment(self) -> str:
        return self._master_key_commitment

    def get(self, sub_flag_id: int) -> SubFlag:
        for sf in self._sub_flags:
            if sf.id == sub_flag_id:
                return sf
        raise KeyError(f"Unknown sub-flag: {sub_flag_id}")

    def index_of(self, secret: str) -> int:
        """Return the id of the sub-flag whose commitment secret opens.

        Raises KeyError if secret matches no commitment.
        """
        return index_of(self.commitments, secret)

    def to_artifact(self) -> CommitmentArtifact:
        return CommitmentArtifact(
            n=len(self._sub_flags),
            commitments=tuple(self.commitments),
            master_key_commitment=self._master_key_commitment,
            sub_flags=tuple(sf.secret for sf in self._sub_flags),
            master_key=self._master_key,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Path, include_secrets: bool = True) -> None:
        """Write the artifact JSON.

        With include_secrets=False only the public part is written,
        which is what participants and deployment need.
        """
        data = self.to_artifact().to_json_dict(include_secrets=include_secrets)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        logger.info(f"Commitment artifact written: {path} (N={len(self._sub_flags)})")


def index_of(commitments: Sequence[str], secret: str) -> int:
    """Position of the commitment that secret opens."""
    digest = commit(secret)
    for i, c in enumerate(commitments):
        if c.lower() == digest:
            return i
    raise KeyError("Secret does not open any published commitment")


def load_artifact(path: Path) -> CommitmentArtifact:
    """Read the public (and, if present, secret) contents of an artifact.

    Raises:
        PersistenceError: If the file is missing or structurally invalid.
    """
    if not path.exists():
        raise PersistenceError(
            f"Commitment artifact not found: {path}",
            kind=PersistenceError.NOT_FOUND,
        )
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PersistenceError(f"Cannot parse commitment artifact {path}: {e}") from e

    return _parse_artifact(data, path)


def _parse_artifact(data: Any, path: Path) -> CommitmentArtifact:
    if not isinstance(data, dict):
        raise PersistenceError(f"Commitment artifact {path} must be a JSON object")
    for key in ("N", "commitments", "masterKeyCommitment"):
        if key not in data:
            raise PersistenceError(f"Commitment artifact {path} missing '{key}' field")

    n = data["N"]
    commitments = data["commitments"]
    if not isinstance(n, int) or isinstance(n, bool) or n < 0:
        raise PersistenceError(f"Commitment artifact {path}: 'N' must be a non-negative int")
    if not isinstance(commitments, list) or not all(isinstance(c, str) for c in commitments):
        raise PersistenceError(f"Commitment artifact {path}: 'commitments' must be a list of strings")
    if len(commitments) != n:
        raise PersistenceError(
            f"Commitment artifact {path}: N={n} but {len(commitments)} commitments"
        )

    sub_flags = data.get("subFlags")
    if sub_flags is not None:
        if not isinstance(sub_flags, list) or not all(isinstance(s, str) for s in sub_flags):
            raise PersistenceError(f"Commitment artifact {path}: 'subFlags' must be a list of strings")
        if len(sub_flags) != n:
            raise PersistenceError(
                f"Commitment artifact {path}: N={n} but {len(sub_flags)} sub-flags"
            )

    return CommitmentArtifact(
        n=n,
        commitments=tuple(commitments),
        master_key_commitment=str(data["masterKeyCommitment"]),
        sub_flags=tuple(sub_flags) if sub_flags is not None else None,
        master_key=data.get("masterKey"),
    )
