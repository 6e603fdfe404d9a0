"""Scoreboard deployment — puts the verifier and scoreboard on chain.

The organizer deploys two contracts from compiled Hardhat artifacts:
1. The proof verifier exported by snarkjs (no constructor arguments).
2. The scoreboard, parameterised with the verifier address, N, the
   scoring constants, the master key commitment and the sub-flag
   commitments.

Each deployment is timed and its gas recorded, and the resulting
addresses are written to deployments.json for the participant tools.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from eth_account import Account
from loguru import logger
from web3 import HTTPProvider, Web3
from web3.exceptions import TimeExhausted, Web3Exception

from zkctf.errors import PersistenceError, SubmissionError
from zkctf.ledger.verifier import explain_web3_error
from zkctf.models.subflag import CommitmentArtifact


@dataclass(frozen=True)
class ContractDeployment:
    """One confirmed contract creation."""
    name: str
    address: str
    tx_hash: str
    gas_used: int
    duration_ms: float
    block_number: int


@dataclass(frozen=True)
class DeploymentRecord:
    """Verifier + scoreboard deployment results."""
    verifier: ContractDeployment
    scoreboard: ContractDeployment
    chain_id: int

    @property
    def total_gas(self) -> int:
        return self.verifier.gas_used + self.scoreboard.gas_used

    @property
    def total_ms(self) -> float:
        return self.verifier.duration_ms + self.scoreboard.duration_ms

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "verifier": self.verifier.address,
            "scoreboard": self.scoreboard.address,
        }

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_json_dict(), indent=2) + "\n", encoding="utf-8")

    def render(self) -> str:
        return "\n".join([
            "========== Deployment Metrics ==========",
            f"  Chain ID:        {self.chain_id}",
            "",
            "  Verifier Contract:",
            f"  - Address:       {self.verifier.address}",
            f"  - Time:          {self.verifier.duration_ms:.2f}ms",
            f"  - Gas Used:      {self.verifier.gas_used}",
            "",
            "  Scoreboard Contract:",
            f"  - Address:       {self.scoreboard.address}",
            f"  - Time:          {self.scoreboard.duration_ms:.2f}ms",
            f"  - Gas Used:      {self.scoreboard.gas_used}",
            "",
            "  Total Deployment:",
            f"  - Time:          {self.total_ms:.2f}ms",
            f"  - Gas Used:      {self.total_gas}",
            "========================================",
        ])


def load_contract_artifact(path: Path) -> tuple[list[dict[str, Any]], str]:
    """Read (abi, bytecode) from a compiled contract artifact.

    Raises:
        PersistenceError: If the file is missing or has no abi/bytecode.
    """
    if not path.exists():
        raise PersistenceError(
            f"Contract artifact not found: {path}",
            kind=PersistenceError.NOT_FOUND,
        )
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise PersistenceError(f"Cannot parse contract artifact {path}: {e}") from e

    abi = data.get("abi") if isinstance(data, dict) else None
    bytecode = data.get("bytecode") if isinstance(data, dict) else None
    if isinstance(bytecode, dict):  # Foundry layout
        bytecode = bytecode.get("object")
    if not isinstance(abi, list) or not isinstance(bytecode, str) or len(bytecode) <= 2:
        raise PersistenceError(f"Contract artifact {path} lacks abi or bytecode")
    return abi, bytecode


def deploy_contract(
    w3: Web3,
    account: Any,
    name: str,
    abi: list[dict[str, Any]],
    bytecode: str,
    args: Sequence[Any] = (),
    chain_id: Optional[int] = None,
    timeout_s: float = 300.0,
) -> ContractDeployment:
    """Deploy one contract from account and wait for 1 confirmation.

    Raises:
        SubmissionError: If the transaction fails, reverts or times out.
    """
    start = time.perf_counter()
    try:
        factory = w3.eth.contract(abi=abi, bytecode=bytecode)
        tx = factory.constructor(*args).build_transaction({
            "from": account.address,
            "nonce": w3.eth.get_transaction_count(account.address, "pending"),
            "chainId": chain_id if chain_id is not None else w3.eth.chain_id,
        })
        signed = account.sign_transaction(tx)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info(f"Deploying {name}: tx {Web3.to_hex(tx_hash)}")
        receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout_s)
    except TimeExhausted as e:
        raise SubmissionError(f"{name} deployment not confirmed within {timeout_s:g}s") from e
    except (Web3Exception, ValueError, OSError) as e:
        raise SubmissionError(f"{name} deployment failed: {explain_web3_error(e)}") from e

    if receipt["status"] != 1 or not receipt.get("contractAddress"):
        raise SubmissionError(f"{name} deployment reverted: {Web3.to_hex(tx_hash)}")

    duration_ms = (time.perf_counter() - start) * 1000
    address = receipt["contractAddress"]
    logger.info(f"{name} deployed at {address} (gas {receipt['gasUsed']})")
    return ContractDeployment(
        name=name,
        address=address,
        tx_hash=Web3.to_hex(tx_hash),
        gas_used=int(receipt["gasUsed"]),
        duration_ms=duration_ms,
        block_number=int(receipt["blockNumber"]),
    )


def deploy_scoreboard(
    artifact: CommitmentArtifact,
    verifier_artifact: Path,
    scoreboard_artifact: Path,
    rpc_url: str,
    private_key: str,
    base_points: int = 10,
    final_bonus: int = 50,
    chain_id: Optional[int] = None,
    timeout_s: float = 300.0,
    w3: Optional[Web3] = None,
) -> DeploymentRecord:
    """Deploy the verifier, then the scoreboard wired to it."""
    verifier_abi, verifier_code = load_contract_artifact(verifier_artifact)
    scoreboard_abi, scoreboard_code = load_contract_artifact(scoreboard_artifact)

    w3 = w3 or Web3(HTTPProvider(rpc_url))
    account = Account.from_key(private_key)
    if chain_id is None:
        chain_id = w3.eth.chain_id

    logger.info(f"Deploying with N = {artifact.n}")
    verifier = deploy_contract(
        w3, account, "Verifier", verifier_abi, verifier_code,
        chain_id=chain_id, timeout_s=timeout_s,
    )
    scoreboard = deploy_contract(
        w3, account, "Scoreboard", scoreboard_abi, scoreboard_code,
        args=(
            verifier.address,
            artifact.n,
            base_points,
            final_bonus,
            artifact.master_key_commitment,
            list(artifact.commitments),
        ),
        chain_id=chain_id,
        timeout_s=timeout_s,
    )
    return DeploymentRecord(verifier=verifier, scoreboard=scoreboard, chain_id=chain_id)
