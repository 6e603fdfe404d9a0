"""Tests for the commitment store — proves commitments are deterministic and artifacts fail closed."""

import json
from pathlib import Path

import pytest

from zkctf.crypto.commitment import (
    CommitmentStore,
    commit,
    index_of,
    load_artifact,
    random_sub_flag,
)
from zkctf.errors import PersistenceError


EMPTY_KECCAK = "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


@pytest.fixture
def store() -> CommitmentStore:
    return CommitmentStore.generate(4)


class TestCommit:
    def test_deterministic(self) -> None:
        assert commit("CTF-abc123") == commit("CTF-abc123")

    def test_distinct_secrets_distinct_commitments(self) -> None:
        assert commit("CTF-a") != commit("CTF-b")

    def test_empty_secret_well_formed(self) -> None:
        digest = commit("")
        assert digest == EMPTY_KECCAK
        assert len(digest) == 66

    def test_lowercase_hex(self) -> None:
        digest = commit("CTF-abc123")
        assert digest.startswith("0x")
        assert digest == digest.lower()

    def test_random_sub_flag_format(self) -> None:
        flag = random_sub_flag()
        assert flag.startswith("CTF-")
        assert len(flag) == 4 + 24
        int(flag[4:], 16)


class TestGenerate:
    def test_generates_count(self, store: CommitmentStore) -> None:
        assert len(store.sub_flags) == 4
        assert [sf.id for sf in store.sub_flags] == [0, 1, 2, 3]

    def test_commitments_match_secrets(self, store: CommitmentStore) -> None:
        for sf in store.sub_flags:
            assert sf.commitment == commit(sf.secret)

    def test_master_key_commitment(self, store: CommitmentStore) -> None:
        assert store.master_key_commitment == commit("SUPER_SECRET_MASTER_KEY")

    def test_zero_count_rejected(self) -> None:
        with pytest.raises(ValueError):
            CommitmentStore.generate(0)

    def test_get_unknown_id(self, store: CommitmentStore) -> None:
        with pytest.raises(KeyError):
            store.get(99)

    def test_index_of(self, store: CommitmentStore) -> None:
        sf = store.get(2)
        assert store.index_of(sf.secret) == 2
        assert index_of(store.commitments, sf.secret) == 2

    def test_index_of_unknown_secret(self, store: CommitmentStore) -> None:
        with pytest.raises(KeyError):
            store.index_of("CTF-not-a-flag")


class TestPersistence:
    def test_save_and_load(self, store: CommitmentStore, tmp_path: Path) -> None:
        path = tmp_path / "ctf_data.json"
        store.save(path)
        loaded = CommitmentStore.load(path)
        assert loaded.sub_flags == store.sub_flags
        assert loaded.master_key_commitment == store.master_key_commitment

    def test_artifact_layout(self, store: CommitmentStore, tmp_path: Path) -> None:
        path = tmp_path / "ctf_data.json"
        store.save(path)
        data = json.loads(path.read_text())
        assert list(data) == ["N", "subFlags", "commitments", "masterKey", "masterKeyCommitment"]
        assert data["N"] == 4

    def test_public_only(self, store: CommitmentStore, tmp_path: Path) -> None:
        path = tmp_path / "public.json"
        store.save(path, include_secrets=False)
        artifact = load_artifact(path)
        assert not artifact.has_secrets
        assert artifact.master_key is None
        assert list(artifact.commitments) == store.commitments

    def test_load_public_only_store_rejected(self, store: CommitmentStore, tmp_path: Path) -> None:
        path = tmp_path / "public.json"
        store.save(path, include_secrets=False)
        with pytest.raises(PersistenceError, match="no sub-flag secrets"):
            CommitmentStore.load(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(PersistenceError) as exc:
            load_artifact(tmp_path / "nope.json")
        assert exc.value.kind == PersistenceError.NOT_FOUND

    def test_malformed_json(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError) as exc:
            load_artifact(path)
        assert exc.value.kind == PersistenceError.PARSE_ERROR

    def test_missing_field(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"N": 0, "commitments": []}))
        with pytest.raises(PersistenceError, match="masterKeyCommitment"):
            load_artifact(path)

    def test_count_mismatch(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({
            "N": 2, "commitments": [commit("a")], "masterKeyCommitment": commit("k"),
        }))
        with pytest.raises(PersistenceError, match="N=2"):
            load_artifact(path)

    def test_tampered_commitment(self, store: CommitmentStore, tmp_path: Path) -> None:
        path = tmp_path / "ctf_data.json"
        store.save(path)
        data = json.loads(path.read_text())
        data["commitments"][1] = commit("CTF-forged")
        path.write_text(json.dumps(data))
        with pytest.raises(PersistenceError) as exc:
            CommitmentStore.load(path)
        assert exc.value.kind == PersistenceError.INTEGRITY

    def test_tampered_master_key(self, store: CommitmentStore, tmp_path: Path) -> None:
        path = tmp_path / "ctf_data.json"
        store.save(path)
        data = json.loads(path.read_text())
        data["masterKey"] = "OTHER_KEY"
        path.write_text(json.dumps(data))
        with pytest.raises(PersistenceError) as exc:
            CommitmentStore.load(path)
        assert exc.value.kind == PersistenceError.INTEGRITY
