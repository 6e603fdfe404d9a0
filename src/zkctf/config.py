"""Runtime configuration — every recognised option and its default.

Values come from the process environment, optionally seeded from a
.env file. Components take the config (or the individual values they
need) through their constructors; nothing reads the environment
after startup.

Usage:
    config = ZkCtfConfig.from_env(Path(".env"))
    orchestrator = ProofOrchestrator(prover, config.proof_dir,
                                     chunk_count=config.chunk_count)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


DEFAULT_MASTER_KEY = "SUPER_SECRET_MASTER_KEY"
PROOF_SYSTEMS = ("plonk", "groth16")


@dataclass(frozen=True)
class ZkCtfConfig:
    """Explicit configuration for the commit/prove/submit pipeline."""

    # Organizer
    master_key: str = DEFAULT_MASTER_KEY
    sub_flag_count: int = 4
    base_points: int = 10
    final_bonus: int = 50
    artifact_path: Path = Path("ctf_data.json")

    # Ledger
    rpc_url: str = "http://127.0.0.1:8545"
    private_key: Optional[str] = None
    chain_id: Optional[int] = None
    scoreboard_address: Optional[str] = None

    # Encoding
    chunk_count: int = 4  # a 28-byte sub-flag needs 56 hex digits
    chunk_width: int = 16  # hex digits per chunk (64-bit)

    # Proving
    max_concurrency: int = os.cpu_count() or 1
    proof_system: str = "plonk"
    snarkjs_bin: str = "snarkjs"
    circuit_wasm: Path = Path("circuits/SubFlagCheck.wasm")
    circuit_zkey: Path = Path("circuits/SubFlagCheck.zkey")
    proof_dir: Path = Path("proofs")
    prover_timeout_s: float = 600.0

    # Submission
    sequential: bool = True
    submit_delay_ms: float = 100.0
    submit_concurrency: int = 4
    tx_timeout_s: float = 120.0

    debug: bool = False

    def __post_init__(self) -> None:
        if self.sub_flag_count <= 0:
            raise ValueError(f"sub_flag_count must be positive, got {self.sub_flag_count}")
        if self.chunk_count <= 0:
            raise ValueError(f"chunk_count must be positive, got {self.chunk_count}")
        if self.chunk_width <= 0:
            raise ValueError(f"chunk_width must be positive, got {self.chunk_width}")
        if self.max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {self.max_concurrency}")
        if self.submit_concurrency <= 0:
            raise ValueError(
                f"submit_concurrency must be positive, got {self.submit_concurrency}"
            )
        if self.submit_delay_ms < 0:
            raise ValueError(f"submit_delay_ms must be >= 0, got {self.submit_delay_ms}")
        if self.prover_timeout_s <= 0 or self.tx_timeout_s <= 0:
            raise ValueError("timeouts must be positive")
        if self.proof_system not in PROOF_SYSTEMS:
            raise ValueError(
                f"proof_system must be one of {PROOF_SYSTEMS}, got {self.proof_system!r}"
            )

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> ZkCtfConfig:
        """Build a config from environment variables.

        If env_file is given it is loaded first (existing variables win).
        environ overrides os.environ, which keeps tests hermetic.
        """
        if environ is None:
            if env_file is not None:
                load_dotenv(env_file)
            environ = os.environ

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            value = environ.get(name)
            if value is None or not value.strip():
                return default
            return value.strip()

        mode = (get("SUBMISSION_MODE", "sequential") or "").lower()
        if mode not in ("sequential", "parallel"):
            raise ValueError(f"SUBMISSION_MODE must be sequential or parallel, got {mode!r}")

        chain_id = get("CHAIN_ID")
        defaults = cls()
        return cls(
            master_key=get("MASTER_KEY", DEFAULT_MASTER_KEY),
            sub_flag_count=_as_int("N", get("N"), defaults.sub_flag_count),
            base_points=_as_int("BASE_POINTS", get("BASE_POINTS"), defaults.base_points),
            final_bonus=_as_int("FINAL_BONUS", get("FINAL_BONUS"), defaults.final_bonus),
            artifact_path=Path(get("CTF_DATA", str(defaults.artifact_path))),
            rpc_url=get("RPC_URL", defaults.rpc_url),
            private_key=get("PRIVATE_KEY"),
            chain_id=_as_int("CHAIN_ID", chain_id, 0) if chain_id else None,
            scoreboard_address=get("SCOREBOARD_ADDRESS"),
            chunk_count=_as_int("NUM_CHUNKS", get("NUM_CHUNKS"), defaults.chunk_count),
            chunk_width=_as_int("CHUNK_WIDTH", get("CHUNK_WIDTH"), defaults.chunk_width),
            max_concurrency=_as_int(
                "MAX_CONCURRENCY", get("MAX_CONCURRENCY"), defaults.max_concurrency
            ),
            proof_system=(get("PROOF_SYSTEM", defaults.proof_system) or "").lower(),
            snarkjs_bin=get("SNARKJS_BIN", defaults.snarkjs_bin),
            circuit_wasm=Path(get("CIRCUIT_WASM", str(defaults.circuit_wasm))),
            circuit_zkey=Path(get("CIRCUIT_ZKEY", str(defaults.circuit_zkey))),
            proof_dir=Path(get("PROOF_DIR", str(defaults.proof_dir))),
            prover_timeout_s=_as_float(
                "PROVER_TIMEOUT_S", get("PROVER_TIMEOUT_S"), defaults.prover_timeout_s
            ),
            sequential=mode == "sequential",
            submit_delay_ms=_as_float(
                "SUBMIT_DELAY_MS", get("SUBMIT_DELAY_MS"), defaults.submit_delay_ms
            ),
            submit_concurrency=_as_int(
                "SUBMIT_CONCURRENCY", get("SUBMIT_CONCURRENCY"), defaults.submit_concurrency
            ),
            tx_timeout_s=_as_float("TX_TIMEOUT_S", get("TX_TIMEOUT_S"), defaults.tx_timeout_s),
            debug=_as_bool(get("DEBUG")),
        )


def _as_int(name: str, raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _as_float(name: str, raw: Optional[str], default: float) -> float:
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _as_bool(raw: Optional[str]) -> bool:
    if raw is None:
        return False
    return raw.lower() not in ("0", "false", "no", "off", "")
