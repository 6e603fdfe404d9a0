"""Prover service — the capability interface the orchestrator drives.

The orchestrator never knows how a proof is computed. It writes the
circuit input to input.json in a per-job directory and asks a
ProverService to turn it into witness.wtns, then into proof.json and
public.json.

Two backends:
- SnarkjsProver: out-of-process `snarkjs wtns calculate` and
  `snarkjs <system> prove`, each bounded by a timeout.
- InProcessProver: wraps Python callables (an in-process proving
  library, or a test double) behind the same contract.

A backend has no concurrency of its own. Every call blocks until the
artifact is on disk or a ProverError is raised.
"""

from __future__ import annotations

import json
import shlex
import subprocess
from pathlib import Path
from typing import Any, Callable, Protocol, runtime_checkable

from loguru import logger

from zkctf.errors import ProverError


INPUT_FILENAME = "input.json"
WITNESS_FILENAME = "witness.wtns"
PROOF_FILENAME = "proof.json"
PUBLIC_FILENAME = "public.json"


@runtime_checkable
class ProverService(Protocol):
    """Contract for proving backends."""

    def compute_witness(self, input_path: Path, witness_path: Path) -> None:
        """Compute the witness for the circuit input at input_path."""
        ...

    def generate_proof(
        self,
        witness_path: Path,
        proof_path: Path,
        public_path: Path,
    ) -> tuple[dict[str, Any], list[str]]:
        """Prove from a witness. Returns (proof, public_signals)."""
        ...


class SnarkjsProver:
    """Runs the snarkjs CLI as a subprocess.

    Usage:
        prover = SnarkjsProver(
            wasm_path=Path("circuits/SubFlagCheck.wasm"),
            zkey_path=Path("circuits/SubFlagCheck.zkey"),
            proof_system="plonk",
        )
    """

    def __init__(
        self,
        wasm_path: Path,
        zkey_path: Path,
        proof_system: str = "plonk",
        snarkjs_bin: str = "snarkjs",
        timeout_s: float = 600.0,
    ) -> None:
        if proof_system not in ("plonk", "groth16"):
            raise ValueError(f"Unsupported proof system: {proof_system!r}")
        self._wasm_path = Path(wasm_path)
        self._zkey_path = Path(zkey_path)
        self._proof_system = proof_system
        self._bin = shlex.split(snarkjs_bin)
        self._timeout_s = timeout_s

    @property
    def proof_system(self) -> str:
        return self._proof_system

    def compute_witness(self, input_path: Path, witness_path: Path) -> None:
        self._run(
            "witness",
            ["wtns", "calculate", str(self._wasm_path), str(input_path), str(witness_path)],
        )
        if not witness_path.exists():
            raise ProverError(
                f"snarkjs reported success but wrote no witness: {witness_path}",
                stage="witness",
            )

    def generate_proof(
        self,
        witness_path: Path,
        proof_path: Path,
        public_path: Path,
    ) -> tuple[dict[str, Any], list[str]]:
        self._run(
            "prove",
            [
                self._proof_system, "prove",
                str(self._zkey_path), str(witness_path),
                str(proof_path), str(public_path),
            ],
        )
        return read_proof_files(proof_path, public_path)

    def _run(self, stage: str, args: list[str]) -> None:
        cmd = self._bin + args
        logger.debug(f"[{stage}] $ {' '.join(cmd)}")
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout_s,
            )
        except subprocess.TimeoutExpired as e:
            raise ProverError(
                f"snarkjs {stage} timed out after {self._timeout_s:g}s",
                stage=stage,
                output=_text(e.stderr) or _text(e.stdout),
            ) from e
        except OSError as e:
            raise ProverError(f"Cannot run {cmd[0]}: {e}", stage=stage) from e

        if completed.returncode != 0:
            raise ProverError(
                f"snarkjs {stage} exited with status {completed.returncode}",
                stage=stage,
                returncode=completed.returncode,
                output=(completed.stderr or completed.stdout).strip(),
            )


class InProcessProver:
    """Adapts Python callables to the ProverService contract.

    witness_fn(inputs) -> bytes is the witness; prove_fn(witness) ->
    (proof, public_signals). Whatever they raise becomes a ProverError
    for the stage it was raised in.
    """

    def __init__(
        self,
        witness_fn: Callable[[dict[str, Any]], bytes],
        prove_fn: Callable[[bytes], tuple[dict[str, Any], list[Any]]],
    ) -> None:
        self._witness_fn = witness_fn
        self._prove_fn = prove_fn

    def compute_witness(self, input_path: Path, witness_path: Path) -> None:
        try:
            inputs = json.loads(input_path.read_text(encoding="utf-8"))
            witness = self._witness_fn(inputs)
        except ProverError:
            raise
        except Exception as e:
            raise ProverError(f"Witness computation failed: {e}", stage="witness") from e
        witness_path.write_bytes(witness)

    def generate_proof(
        self,
        witness_path: Path,
        proof_path: Path,
        public_path: Path,
    ) -> tuple[dict[str, Any], list[str]]:
        try:
            proof, public_signals = self._prove_fn(witness_path.read_bytes())
        except ProverError:
            raise
        except Exception as e:
            raise ProverError(f"Proof generation failed: {e}", stage="prove") from e
        signals = [str(s) for s in public_signals]
        proof_path.write_text(json.dumps(proof), encoding="utf-8")
        public_path.write_text(json.dumps(signals), encoding="utf-8")
        return proof, signals


def read_proof_files(proof_path: Path, public_path: Path) -> tuple[dict[str, Any], list[str]]:
    """Load proof.json and public.json as written by snarkjs.

    Raises:
        ProverError: If either file is missing or malformed.
    """
    try:
        proof = json.loads(proof_path.read_text(encoding="utf-8"))
        public = json.loads(public_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ProverError(f"Cannot read prover output: {e}", stage="prove") from e

    if not isinstance(proof, dict):
        raise ProverError(f"{proof_path} is not a JSON object", stage="prove")
    if isinstance(public, dict):
        public = public.get("publicSignals", public.get("pubSignals"))
    if not isinstance(public, list):
        raise ProverError(f"{public_path} holds no public signal list", stage="prove")
    return proof, [str(s) for s in public]


def _text(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace").strip()
    return str(data).strip()
