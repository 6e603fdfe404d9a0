"""Secret encoding and commitments — chunk encoder, commitment store."""

from zkctf.crypto.chunking import decode, encode, max_secret_bytes
from zkctf.crypto.commitment import CommitmentStore, commit, load_artifact

__all__ = ["decode", "encode", "max_secret_bytes", "CommitmentStore", "commit", "load_artifact"]
