"""Verifier service — on-chain proof verification and scoring.

The scoreboard contract checks a proof against its verifier and
credits the sender. From this side it is a single request/response
call:

    verify_and_score(sub_flag_index, nonce, proof, public_signals)
        -> VerifierReceipt | SubmissionError

ScoreboardVerifier implements it as a signed transaction to
submitSubFlagProof(uint256,uint256,uint256[P],uint256[S]) and waits
for the receipt. A revert, a failed receipt, a network error or a
receipt timeout all surface as SubmissionError.

Proof payloads are flattened the way the snarkjs Solidity verifiers
expect them: Groth16 as 8 field elements with the G2 coordinates
swapped, PLONK as 9 G1 points followed by 6 evaluations.
"""

from __future__ import annotations

import threading
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from eth_account import Account
from loguru import logger
from web3 import HTTPProvider, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from zkctf.errors import SubmissionError
from zkctf.models.submission import VerifierReceipt


GROTH16_PROOF_LENGTH = 8
PLONK_PROOF_LENGTH = 24

_PLONK_POINTS = ("A", "B", "C", "Z", "T1", "T2", "T3", "Wxi", "Wxiw")
_PLONK_EVALS = ("eval_a", "eval_b", "eval_c", "eval_s1", "eval_s2", "eval_zw")


@runtime_checkable
class VerifierService(Protocol):
    """Contract for proof verification backends."""

    def verify_and_score(
        self,
        sub_flag_index: int,
        nonce: int,
        proof: Sequence[int],
        public_signals: Sequence[int],
    ) -> VerifierReceipt:
        ...


# ----------------------------------------------------------------------
# Payload formatting
# ----------------------------------------------------------------------


def to_field_element(value: Any) -> int:
    """Parse a snarkjs field element (decimal or 0x-hex string, or int)."""
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def format_proof(proof: dict[str, Any], proof_system: Optional[str] = None) -> list[int]:
    """Flatten a snarkjs proof.json into the verifier's fixed-order array.

    The proof system is taken from the proof's "protocol" field when
    present, else from proof_system.

    Raises:
        SubmissionError: If the proof lacks the expected fields.
    """
    system = proof.get("protocol") or proof_system
    try:
        if system == "groth16":
            a, b, c = proof["pi_a"], proof["pi_b"], proof["pi_c"]
            raw = [a[0], a[1], b[0][1], b[0][0], b[1][1], b[1][0], c[0], c[1]]
        elif system == "plonk":
            raw = []
            for name in _PLONK_POINTS:
                raw.extend(proof[name][:2])
            raw.extend(proof[name] for name in _PLONK_EVALS)
        else:
            raise SubmissionError(f"Unknown proof system: {system!r}")
        return [to_field_element(v) for v in raw]
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise SubmissionError(f"Malformed {system} proof: {e}") from e


def proof_length(proof_system: str) -> int:
    if proof_system == "groth16":
        return GROTH16_PROOF_LENGTH
    if proof_system == "plonk":
        return PLONK_PROOF_LENGTH
    raise ValueError(f"Unknown proof system: {proof_system!r}")


def scoreboard_abi(proof_len: int, signal_count: int) -> list[dict[str, Any]]:
    """Minimal ABI for submitSubFlagProof with fixed-size arrays."""
    return [{
        "inputs": [
            {"internalType": "uint256", "name": "subFlagIndex", "type": "uint256"},
            {"internalType": "uint256", "name": "nonce", "type": "uint256"},
            {"internalType": f"uint256[{proof_len}]", "name": "proof", "type": f"uint256[{proof_len}]"},
            {"internalType": f"uint256[{signal_count}]", "name": "pubSignals", "type": f"uint256[{signal_count}]"},
        ],
        "name": "submitSubFlagProof",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    }]


def explain_web3_error(e: Exception) -> str:
    """Best human-readable message for a web3 failure."""
    if isinstance(e, ContractLogicError):
        return f"revert: {e.message}" if getattr(e, "message", None) else f"revert: {e}"
    if isinstance(e, ValueError) and e.args and isinstance(e.args[0], dict):
        return str(e.args[0].get("message") or e)
    return str(e) or type(e).__name__


# ----------------------------------------------------------------------
# Scoreboard contract backend
# ----------------------------------------------------------------------


class ScoreboardVerifier:
    """Submits proofs to the deployed scoreboard contract.

    Signing and sending are serialized under a lock so concurrent
    callers draw distinct account nonces; waiting for receipts is not.

    Usage:
        verifier = ScoreboardVerifier(
            rpc_url="http://127.0.0.1:8545",
            private_key="0x...",
            scoreboard_address="0x...",
            proof_system="plonk",
        )
        receipt = verifier.verify_and_score(1, 7, proof, signals)
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        scoreboard_address: str,
        proof_system: str = "plonk",
        public_signal_count: int = 1,
        chain_id: Optional[int] = None,
        tx_timeout_s: float = 120.0,
        abi: Optional[list[dict[str, Any]]] = None,
        w3: Optional[Web3] = None,
    ) -> None:
        self._w3 = w3 or Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": tx_timeout_s}))
        self._account = Account.from_key(private_key)
        self._proof_len = proof_length(proof_system)
        self._signal_count = public_signal_count
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(scoreboard_address),
            abi=abi or scoreboard_abi(self._proof_len, public_signal_count),
        )
        self._chain_id = chain_id
        self._tx_timeout_s = tx_timeout_s
        self._send_lock = threading.Lock()
        self._next_tx_nonce: Optional[int] = None

    @property
    def address(self) -> str:
        return self._account.address

    def verify_and_score(
        self,
        sub_flag_index: int,
        nonce: int,
        proof: Sequence[int],
        public_signals: Sequence[int],
    ) -> VerifierReceipt:
        if len(proof) != self._proof_len:
            raise SubmissionError(
                f"Proof has {len(proof)} elements, verifier expects {self._proof_len}"
            )
        if len(public_signals) != self._signal_count:
            raise SubmissionError(
                f"{len(public_signals)} public signals, verifier expects {self._signal_count}"
            )

        try:
            call = self._contract.functions.submitSubFlagProof(
                sub_flag_index, nonce, list(proof), list(public_signals)
            )
            tx_hash = self._send(call)
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._tx_timeout_s
            )
        except TimeExhausted as e:
            raise SubmissionError(
                f"No receipt within {self._tx_timeout_s:g}s for sub-flag {sub_flag_index}"
            ) from e
        except (Web3Exception, ValueError, TypeError, OSError) as e:
            raise SubmissionError(explain_web3_error(e)) from e

        tx_hex = Web3.to_hex(tx_hash)
        if receipt["status"] != 1:
            raise SubmissionError(f"Transaction {tx_hex} reverted")

        logger.debug(
            f"submitSubFlagProof({sub_flag_index}, {nonce}) mined in block "
            f"{receipt['blockNumber']} gas={receipt['gasUsed']}"
        )
        return VerifierReceipt(
            gas_used=int(receipt["gasUsed"]),
            success=True,
            tx_hash=tx_hex,
            block_number=int(receipt["blockNumber"]),
        )

    def _send(self, call: Any) -> Any:
        """Build, sign and broadcast under the send lock."""
        with self._send_lock:
            if self._next_tx_nonce is None:
                self._next_tx_nonce = self._w3.eth.get_transaction_count(
                    self._account.address, "pending"
                )
            if self._chain_id is None:
                self._chain_id = self._w3.eth.chain_id
            try:
                tx = call.build_transaction({
                    "from": self._account.address,
                    "nonce": self._next_tx_nonce,
                    "chainId": self._chain_id,
                })
                signed = self._account.sign_transaction(tx)
                tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            except Exception:
                # Resync from the node on the next send.
                self._next_tx_nonce = None
                raise
            self._next_tx_nonce += 1
            return tx_hash
