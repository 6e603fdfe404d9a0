"""zkctf CLI — organizer and participant commands for the proof pipeline.

Usage:
    python -m zkctf.cli commit --count 4
    python -m zkctf.cli deploy --verifier-artifact artifacts/PlonkVerifier.json \
        --scoreboard-artifact artifacts/Scoreboard.json
    python -m zkctf.cli prove --flag CTF-0123abcd...
    python -m zkctf.cli submit --parallel

Options not given on the command line come from the environment (and
.env); see zkctf.config. A command exits non-zero only when it cannot
start. Individual proof or submission failures are reported in the
summary.
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Optional

from loguru import logger

from zkctf.config import ZkCtfConfig
from zkctf.crypto.commitment import CommitmentStore, load_artifact
from zkctf.errors import PersistenceError, SubmissionError
from zkctf.ledger.deploy import deploy_scoreboard
from zkctf.ledger.submission import NonceAllocator, RetryPolicy, SubmissionClient
from zkctf.ledger.verifier import ScoreboardVerifier
from zkctf.log import configure_logging
from zkctf.metrics.aggregator import summarize, transaction_table
from zkctf.persistence.proof_store import load_proof_artifacts
from zkctf.persistence.submission_log import SubmissionLog
from zkctf.prover.orchestrator import ProofOrchestrator, jobs_for, jobs_for_secrets
from zkctf.prover.service import SnarkjsProver


DEFAULT_DEPLOYMENTS = Path("deployments.json")


def _fail(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _scoreboard_address(args: argparse.Namespace, config: ZkCtfConfig) -> Optional[str]:
    """--scoreboard, else SCOREBOARD_ADDRESS, else deployments.json."""
    if args.scoreboard:
        return args.scoreboard
    if config.scoreboard_address:
        return config.scoreboard_address
    if args.deployments.exists():
        try:
            return json.loads(args.deployments.read_text(encoding="utf-8")).get("scoreboard")
        except (OSError, json.JSONDecodeError, AttributeError):
            return None
    return None


def cmd_commit(args: argparse.Namespace, config: ZkCtfConfig) -> int:
    count = args.count or config.sub_flag_count
    output = args.output or config.artifact_path
    master_key = args.master_key or config.master_key
    try:
        store = CommitmentStore.generate(count, master_key=master_key)
    except ValueError as e:
        return _fail(str(e))
    store.save(output, include_secrets=not args.public_only)
    print(f"Wrote {count} commitments to {output}")
    for sf in store.sub_flags:
        print(f"  [{sf.id}] {sf.commitment}")
    return 0


def cmd_deploy(args: argparse.Namespace, config: ZkCtfConfig) -> int:
    if not config.private_key:
        return _fail("PRIVATE_KEY is not set")
    try:
        artifact = load_artifact(args.artifact or config.artifact_path)
        record = deploy_scoreboard(
            artifact,
            verifier_artifact=args.verifier_artifact,
            scoreboard_artifact=args.scoreboard_artifact,
            rpc_url=config.rpc_url,
            private_key=config.private_key,
            base_points=config.base_points,
            final_bonus=config.final_bonus,
            chain_id=config.chain_id,
            timeout_s=config.tx_timeout_s,
        )
    except (PersistenceError, SubmissionError) as e:
        return _fail(str(e))
    record.save(args.deployments)
    print(record.render())
    print(f"Addresses written to {args.deployments}")
    return 0


def cmd_prove(args: argparse.Namespace, config: ZkCtfConfig) -> int:
    artifact_path = args.artifact or config.artifact_path
    try:
        if args.flag:
            artifact = load_artifact(artifact_path)
            jobs = jobs_for_secrets(args.flag, artifact.commitments)
        else:
            jobs = jobs_for(CommitmentStore.load(artifact_path).sub_flags)
    except PersistenceError as e:
        return _fail(str(e))
    except KeyError as e:
        return _fail(str(e.args[0]) if e.args else "Unknown flag")

    prover = SnarkjsProver(
        wasm_path=config.circuit_wasm,
        zkey_path=config.circuit_zkey,
        proof_system=config.proof_system,
        snarkjs_bin=config.snarkjs_bin,
        timeout_s=config.prover_timeout_s,
    )
    orchestrator = ProofOrchestrator(
        prover,
        args.proof_dir or config.proof_dir,
        chunk_count=config.chunk_count,
        chunk_width=config.chunk_width,
        max_concurrency=config.max_concurrency,
    )
    try:
        outcomes = orchestrator.run(jobs, concurrency_limit=args.concurrency)
    except ValueError as e:
        return _fail(str(e))
    stats = orchestrator.last_run

    print(summarize([], jobs=outcomes).render())
    if stats is not None:
        print(f"  Wall clock:          {stats.wall_ms:.2f}ms "
              f"(peak {stats.peak_active}/{stats.concurrency_limit} concurrent)")
    for outcome in outcomes:
        if not outcome.succeeded:
            print(f"  proof_{outcome.sub_flag_id} failed at {outcome.stage}: {outcome.error}")
    return 0


def cmd_submit(args: argparse.Namespace, config: ZkCtfConfig) -> int:
    if not config.private_key:
        return _fail("PRIVATE_KEY is not set")
    address = _scoreboard_address(args, config)
    if not address:
        return _fail("No scoreboard address (use --scoreboard, SCOREBOARD_ADDRESS or deploy first)")
    try:
        artifacts = load_proof_artifacts(args.proof_dir or config.proof_dir)
        log = SubmissionLog(storage_path=args.log)
    except PersistenceError as e:
        return _fail(str(e))
    if not artifacts:
        return _fail("No proofs to submit")
    if args.retries < 1:
        return _fail(f"--retries must be at least 1, got {args.retries}")
    if args.start_nonce is not None and args.start_nonce < 0:
        return _fail(f"--start-nonce must be non-negative, got {args.start_nonce}")
    # A resumed log must never reuse a nonce it already spent.
    first_nonce = args.start_nonce if args.start_nonce is not None else log.next_nonce()

    try:
        verifier = ScoreboardVerifier(
            rpc_url=config.rpc_url,
            private_key=config.private_key,
            scoreboard_address=address,
            proof_system=config.proof_system,
            chain_id=config.chain_id,
            tx_timeout_s=config.tx_timeout_s,
        )
    except ValueError as e:
        return _fail(f"Cannot set up verifier: {e}")
    client = SubmissionClient(
        verifier,
        proof_system=config.proof_system,
        submit_delay_ms=config.submit_delay_ms,
        max_workers=config.submit_concurrency,
        log=log,
        nonces=NonceAllocator(start=first_nonce),
    )
    parallel = args.parallel or not config.sequential

    logger.info(f"Submitting from {verifier.address} to {address}, nonces from {first_nonce}")
    start = time.perf_counter()
    if args.retries > 1:
        records = []
        for artifact in artifacts:
            records += client.submit_with_retry(
                artifact, RetryPolicy(max_attempts=args.retries), sequential=not parallel
            )
    else:
        records = client.submit_batch(artifacts, parallel=parallel)
    elapsed_ms = (time.perf_counter() - start) * 1000

    print(summarize(records, elapsed_ms=elapsed_ms).render())
    if args.debug or config.debug:
        print(transaction_table(records))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zkctf",
        description="Commit-reveal CTF with zero-knowledge proof submission",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(".env"),
        help="Environment file to load (default: .env)",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging and tx table")

    sub = parser.add_subparsers(dest="command")

    # commit
    p_commit = sub.add_parser("commit", help="Generate sub-flags and their commitments")
    p_commit.add_argument("--count", type=int, help="Number of sub-flags (default: N)")
    p_commit.add_argument("--master-key", help="Master key (default: MASTER_KEY)")
    p_commit.add_argument("--output", type=Path, help="Artifact path (default: CTF_DATA)")
    p_commit.add_argument(
        "--public-only", action="store_true", help="Omit secrets from the artifact"
    )

    # deploy
    p_deploy = sub.add_parser("deploy", help="Deploy verifier and scoreboard contracts")
    p_deploy.add_argument("--verifier-artifact", type=Path, required=True)
    p_deploy.add_argument("--scoreboard-artifact", type=Path, required=True)
    p_deploy.add_argument("--artifact", type=Path, help="Commitment artifact (default: CTF_DATA)")
    p_deploy.add_argument("--deployments", type=Path, default=DEFAULT_DEPLOYMENTS)

    # prove
    p_prove = sub.add_parser("prove", help="Generate proofs for recovered sub-flags")
    p_prove.add_argument(
        "--flag", action="append", help="Recovered sub-flag (repeatable; default: all in artifact)"
    )
    p_prove.add_argument("--artifact", type=Path, help="Commitment artifact (default: CTF_DATA)")
    p_prove.add_argument("--proof-dir", type=Path, help="Output directory (default: PROOF_DIR)")
    p_prove.add_argument("--concurrency", type=int, help="Max concurrent proofs")

    # submit
    p_submit = sub.add_parser("submit", help="Submit generated proofs to the scoreboard")
    p_submit.add_argument("--proof-dir", type=Path, help="Proof directory (default: PROOF_DIR)")
    p_submit.add_argument("--parallel", action="store_true", help="Submit without throttling")
    p_submit.add_argument("--start-nonce", type=int, help="First submission nonce")
    p_submit.add_argument("--retries", type=int, default=1, help="Attempts per proof")
    p_submit.add_argument("--scoreboard", help="Scoreboard address")
    p_submit.add_argument("--deployments", type=Path, default=DEFAULT_DEPLOYMENTS)
    p_submit.add_argument("--log", type=Path, help="Append attempts to this JSONL file")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = ZkCtfConfig.from_env(args.env_file)
    except ValueError as e:
        return _fail(f"Invalid configuration: {e}")
    configure_logging(args.debug or config.debug)

    commands = {
        "commit": cmd_commit,
        "deploy": cmd_deploy,
        "prove": cmd_prove,
        "submit": cmd_submit,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args, config)


if __name__ == "__main__":
    raise SystemExit(main())
