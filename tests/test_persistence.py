"""Tests for persistence — proves the submission log is append-only and proof directories load fail-closed."""

import json
from pathlib import Path

import pytest

from zkctf.errors import PersistenceError
from zkctf.models.submission import SubmissionRecord, SubmissionStatus
from zkctf.persistence.proof_store import load_proof_artifact, load_proof_artifacts
from zkctf.persistence.submission_log import SubmissionLog


def _record(nonce: int, ok: bool = True) -> SubmissionRecord:
    return SubmissionRecord(
        nonce=nonce,
        gas_used=40000 if ok else None,
        duration_ms=12.0,
        status=SubmissionStatus.SUCCESS if ok else SubmissionStatus.FAILED,
        error=None if ok else "revert",
        sub_flag_id=nonce - 1,
        submitted_at=float(nonce),
    )


def _write_job(proof_dir: Path, job_id: int, signals: list[str]) -> Path:
    job_dir = proof_dir / f"proof_{job_id}"
    job_dir.mkdir(parents=True)
    (job_dir / "proof.json").write_text(json.dumps({"protocol": "plonk"}))
    (job_dir / "public.json").write_text(json.dumps(signals))
    return job_dir


class TestSubmissionLog:
    def test_append_order(self) -> None:
        log = SubmissionLog()
        for n in (1, 2, 3):
            log.append(_record(n))
        assert [r.nonce for r in log.records()] == [1, 2, 3]
        assert log.last_record.nonce == 3

    def test_filter_by_status(self) -> None:
        log = SubmissionLog()
        log.append(_record(1))
        log.append(_record(2, ok=False))
        assert [r.nonce for r in log.records(SubmissionStatus.FAILED)] == [2]

    def test_snapshot_is_a_copy(self) -> None:
        log = SubmissionLog()
        log.append(_record(1))
        log.records().clear()
        assert log.count == 1

    def test_jsonl_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "log" / "submissions.jsonl"
        log = SubmissionLog(storage_path=path)
        log.append(_record(1))
        log.append(_record(2, ok=False))
        assert len(path.read_text().splitlines()) == 2
        assert SubmissionLog(storage_path=path).records() == log.records()

    def test_malformed_line_fails_closed(self, tmp_path: Path) -> None:
        path = tmp_path / "submissions.jsonl"
        path.write_text(json.dumps(_record(1).to_dict()) + "\n{broken\n")
        with pytest.raises(PersistenceError, match="line 2"):
            SubmissionLog(storage_path=path)

    def test_blank_lines_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "submissions.jsonl"
        path.write_text("\n" + json.dumps(_record(1).to_dict()) + "\n\n")
        assert SubmissionLog(storage_path=path).count == 1

    def test_next_nonce_empty(self) -> None:
        assert SubmissionLog().next_nonce() == 1
        assert SubmissionLog().next_nonce(default=7) == 7

    def test_next_nonce_after_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "submissions.jsonl"
        log = SubmissionLog(storage_path=path)
        for n in (3, 5, 4):
            log.append(_record(n, ok=n != 5))
        assert SubmissionLog(storage_path=path).next_nonce() == 6


class TestProofStore:
    def test_load_one(self, tmp_path: Path) -> None:
        job_dir = _write_job(tmp_path, 3, ["5"])
        artifact = load_proof_artifact(job_dir)
        assert artifact.sub_flag_id == 3
        assert artifact.public_signals == ("5",)
        assert artifact.work_dir == job_dir

    def test_load_all_sorted_numerically(self, tmp_path: Path) -> None:
        for i in (10, 2, 1):
            _write_job(tmp_path, i, [str(i)])
        (tmp_path / "notes").mkdir()
        assert [a.sub_flag_id for a in load_proof_artifacts(tmp_path)] == [1, 2, 10]

    def test_incomplete_job_skipped(self, tmp_path: Path) -> None:
        _write_job(tmp_path, 0, ["1"])
        (tmp_path / "proof_1").mkdir()
        assert [a.sub_flag_id for a in load_proof_artifacts(tmp_path)] == [0]

    def test_incomplete_job_strict(self, tmp_path: Path) -> None:
        (tmp_path / "proof_1").mkdir()
        with pytest.raises(PersistenceError) as exc:
            load_proof_artifacts(tmp_path, skip_invalid=False)
        assert exc.value.kind == PersistenceError.NOT_FOUND

    def test_bad_directory_name(self, tmp_path: Path) -> None:
        with pytest.raises(PersistenceError, match="Not a proof directory"):
            load_proof_artifact(tmp_path)

    def test_missing_proof_dir(self, tmp_path: Path) -> None:
        with pytest.raises(PersistenceError) as exc:
            load_proof_artifacts(tmp_path / "missing")
        assert exc.value.kind == PersistenceError.NOT_FOUND
