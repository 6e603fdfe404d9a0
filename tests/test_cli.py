"""Tests for the zkctf CLI — proves commands dispatch and refuse to start without prerequisites."""

import json
import os
from pathlib import Path

import pytest

from zkctf.cli import build_parser, main
from zkctf.errors import SubmissionError
from zkctf.models.submission import VerifierReceipt


DEV_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
SCOREBOARD = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


class FakeScoreboard:
    """Stands in for ScoreboardVerifier; rejects the sub-flags in reject_ids."""

    reject_ids: set[int] = set()
    calls: list[tuple[int, int]] = []

    def __init__(self, **kwargs) -> None:
        self.address = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        self.kwargs = kwargs

    def verify_and_score(self, sub_flag_index, nonce, proof, public_signals) -> VerifierReceipt:
        FakeScoreboard.calls.append((sub_flag_index, nonce))
        if sub_flag_index in self.reject_ids:
            raise SubmissionError("revert: invalid proof")
        return VerifierReceipt(gas_used=45000, success=True, tx_hash=f"0x{nonce:064x}")


@pytest.fixture
def scoreboard(monkeypatch, clean_env: dict, tmp_path: Path) -> type:
    """Three groth16 proofs on disk, a key, and a fake scoreboard patched in."""
    for i in range(3):
        job_dir = tmp_path / "proofs" / f"proof_{i}"
        job_dir.mkdir(parents=True)
        (job_dir / "proof.json").write_text(json.dumps({
            "protocol": "groth16",
            "pi_a": ["1", "2", "1"],
            "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
            "pi_c": ["7", "8", "1"],
        }))
        (job_dir / "public.json").write_text(json.dumps([str(i)]))
    clean_env["PRIVATE_KEY"] = DEV_KEY
    clean_env["SUBMIT_DELAY_MS"] = "0"
    monkeypatch.setattr(FakeScoreboard, "reject_ids", set())
    monkeypatch.setattr(FakeScoreboard, "calls", [])
    monkeypatch.setattr("zkctf.cli.ScoreboardVerifier", FakeScoreboard)
    return FakeScoreboard


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path) -> dict:
    env = {"PATH": os.environ.get("PATH", ""), "PROOF_DIR": str(tmp_path / "proofs")}
    monkeypatch.setattr(os, "environ", env)
    monkeypatch.chdir(tmp_path)
    return env


@pytest.fixture
def artifact(tmp_path: Path) -> Path:
    path = tmp_path / "ctf_data.json"
    assert main(["commit", "--count", "2", "--output", str(path)]) == 0
    return path


class TestCLIParsing:
    def test_commit_command(self) -> None:
        args = build_parser().parse_args(["commit", "--count", "4", "--public-only"])
        assert args.command == "commit"
        assert args.count == 4
        assert args.public_only

    def test_prove_repeatable_flag(self) -> None:
        args = build_parser().parse_args(["prove", "--flag", "CTF-a", "--flag", "CTF-b"])
        assert args.flag == ["CTF-a", "CTF-b"]

    def test_submit_options(self) -> None:
        args = build_parser().parse_args(["--debug", "submit", "--parallel", "--start-nonce", "3"])
        assert args.debug
        assert args.parallel
        assert args.start_nonce == 3

    def test_deploy_requires_artifacts(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["deploy"])


class TestCLIExecution:
    def test_no_command_shows_help(self) -> None:
        assert main([]) == 0

    def test_commit_writes_artifact(self, artifact: Path) -> None:
        data = json.loads(artifact.read_text())
        assert data["N"] == 2
        assert len(data["subFlags"]) == 2

    def test_commit_uses_env_count(self, clean_env: dict, tmp_path: Path) -> None:
        clean_env["N"] = "3"
        assert main(["commit"]) == 0
        assert json.loads((tmp_path / "ctf_data.json").read_text())["N"] == 3

    def test_invalid_config(self, clean_env: dict) -> None:
        clean_env["SUBMISSION_MODE"] = "burst"
        assert main(["commit"]) == 1

    def test_prove_reports_failures(self, artifact: Path, clean_env: dict, capsys) -> None:
        clean_env["SNARKJS_BIN"] = "definitely-not-snarkjs"
        assert main(["prove", "--artifact", str(artifact), "--concurrency", "2"]) == 0
        out = capsys.readouterr().out
        assert "0/2 succeeded" in out
        assert "failed at witness" in out

    def test_prove_unknown_flag(self, artifact: Path) -> None:
        assert main(["prove", "--artifact", str(artifact), "--flag", "CTF-nope"]) == 1

    def test_prove_missing_artifact(self, tmp_path: Path) -> None:
        assert main(["prove", "--artifact", str(tmp_path / "missing.json")]) == 1

    def test_prove_bad_concurrency(self, artifact: Path) -> None:
        assert main(["prove", "--artifact", str(artifact), "--concurrency", "0"]) == 1

    def test_deploy_without_key(self, tmp_path: Path) -> None:
        assert main([
            "deploy",
            "--verifier-artifact", str(tmp_path / "v.json"),
            "--scoreboard-artifact", str(tmp_path / "s.json"),
        ]) == 1

    def test_submit_without_key(self) -> None:
        assert main(["submit"]) == 1

    def test_submit_without_scoreboard(self, clean_env: dict) -> None:
        clean_env["PRIVATE_KEY"] = DEV_KEY
        assert main(["submit"]) == 1

    def test_submit_without_proofs(self, clean_env: dict) -> None:
        clean_env["PRIVATE_KEY"] = DEV_KEY
        assert main(["submit", "--scoreboard", "0x5FbDB2315678afecb367f032d93F642f64180aa3"]) == 1

    def test_submit_mixed_outcome(self, scoreboard: type, capsys) -> None:
        scoreboard.reject_ids = {1}
        assert main(["submit", "--scoreboard", SCOREBOARD]) == 0
        out = capsys.readouterr().out
        assert "Successful:          2" in out
        assert "Failed:              1" in out
        assert scoreboard.calls == [(0, 1), (1, 2), (2, 3)]

    def test_submit_resumes_nonces_from_log(self, scoreboard: type, tmp_path: Path) -> None:
        log = tmp_path / "submissions.jsonl"
        assert main(["submit", "--scoreboard", SCOREBOARD, "--log", str(log)]) == 0
        assert main(["submit", "--scoreboard", SCOREBOARD, "--log", str(log)]) == 0
        assert [nonce for _, nonce in scoreboard.calls] == [1, 2, 3, 4, 5, 6]
        assert len(log.read_text().splitlines()) == 6

    def test_submit_retries_honour_start_nonce(self, scoreboard: type) -> None:
        scoreboard.reject_ids = {2}
        assert main([
            "submit", "--scoreboard", SCOREBOARD, "--retries", "2", "--start-nonce", "10",
        ]) == 0
        assert scoreboard.calls == [(0, 10), (1, 11), (2, 12), (2, 13)]

    def test_submit_negative_start_nonce(self, scoreboard: type) -> None:
        assert main(["submit", "--scoreboard", SCOREBOARD, "--start-nonce", "-1"]) == 1
        assert scoreboard.calls == []
