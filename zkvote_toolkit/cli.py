#!/usr/bin/env python3
"""
Unified CLI for zkVote Toolkit.

Connection settings default to the ZKV_* environment variables (a .env file
is loaded automatically); every flag below overrides its variable.

Examples:
  - Registry
    zkvote registry-leaves --rpc-url https://... --contract 0x... [--json]
    zkvote registry-root --contract 0x... --start-block 3595561 --tree-depth 3

  - Ballots
    zkvote ballot-witness --secret 123 --nullifier 456 --output witness.json
    zkvote ballot-proof --secret 123 --nullifier 456 --circuits-dir circuits
    zkvote cast-vote --secret 123 --nullifier 456 --contestant-id 1
"""

import argparse
import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from rich.panel import Panel
from rich.table import Table

from zkvote_toolkit.commands.helpers import handle_command_error
from zkvote_toolkit.commands.validation import (
    validate_block_number,
    validate_eth_address,
    validate_field_element,
    validate_tree_depth,
)
from zkvote_toolkit.proofs import BallotProofPipeline
from zkvote_toolkit.shared.constants import ElectionConfig, RegistryConstants
from zkvote_toolkit.shared.logging import set_log_level
from zkvote_toolkit.utils.formatters import (
    console,
    format_field,
    generate_timestamped_filename,
    save_json_output,
)


def _config_from_args(args: argparse.Namespace) -> ElectionConfig:
    contract = (
        validate_eth_address(args.contract, "contract")
        if args.contract
        else None
    )
    start_block = (
        validate_block_number(args.start_block, "start_block")
        if args.start_block is not None
        else None
    )
    circuits_dir = getattr(args, "circuits_dir", None)
    tree_depth = (
        validate_tree_depth(args.tree_depth)
        if args.tree_depth is not None
        else None
    )
    return ElectionConfig.from_env(
        rpc_url=args.rpc_url,
        contract_address=contract,
        chain_id=args.chain_id,
        start_block=start_block,
        tree_depth=tree_depth,
        hash_function=args.hash,
        circuits_dir=Path(circuits_dir) if circuits_dir else None,
    )


def _voter_inputs(args: argparse.Namespace) -> Tuple[int, int]:
    """Secret and nullifier from flags, falling back to ZKV_SECRET/ZKV_NULLIFIER."""
    secret = validate_field_element(
        args.secret or os.getenv("ZKV_SECRET"), "secret"
    )
    nullifier = validate_field_element(
        args.nullifier or os.getenv("ZKV_NULLIFIER"), "nullifier"
    )
    return secret, nullifier


def cmd_registry_leaves(args: argparse.Namespace) -> None:
    async def run():
        config = _config_from_args(args)
        async with BallotProofPipeline(config) as pipeline:
            records = await pipeline.fetch_registrations()

        console.print(
            f"Registered voters: {len(records)} (from block {config.start_block})"
        )

        if args.json:
            output = {
                "contract": config.contract_address,
                "start_block": config.start_block,
                "leaves": [
                    {
                        "index": r.registration_index,
                        "commitment": str(r.commitment),
                        "block_number": r.block_number,
                        "transaction_hash": r.transaction_hash,
                    }
                    for r in records
                ],
            }
            filename = args.output or generate_timestamped_filename(
                "registry_leaves"
            )
            save_json_output(output, filename)
            return

        table = Table(title="Registry leaves")
        table.add_column("Index", justify="right")
        table.add_column("Commitment")
        table.add_column("Block", justify="right")
        for r in records:
            table.add_row(
                str(r.registration_index),
                format_field(r.commitment),
                str(r.block_number) if r.block_number is not None else "-",
            )
        console.print(table)

    asyncio.run(run())


def cmd_registry_root(args: argparse.Namespace) -> None:
    async def run():
        config = _config_from_args(args)
        async with BallotProofPipeline(config) as pipeline:
            tree = await pipeline.build_registry_tree()
            accepted = await pipeline.contract.accepted_roots(
                config.root_history_size
            )

        in_sync = tree.root in accepted
        if args.json:
            output = {
                "root": str(tree.root),
                "leaf_count": len(tree),
                "tree_depth": config.tree_depth,
                "accepted_roots": [str(r) for r in accepted],
                "in_sync": in_sync,
            }
            filename = args.output or generate_timestamped_filename(
                "registry_root"
            )
            save_json_output(output, filename)
            return

        console.print(f"[bold]Local root:[/bold] {tree.root}")
        console.print(
            f"Leaves: {len(tree)}/{tree.capacity} (depth {config.tree_depth})"
        )
        if in_sync:
            console.print("[green]✓ Root is accepted by the contract[/green]")
        else:
            console.print(
                "[yellow]⚠ Root is not in the contract's accepted roots[/yellow]"
            )
            for root in accepted:
                console.print(f"  - {format_field(root)}")

    asyncio.run(run())


def cmd_ballot_witness(args: argparse.Namespace) -> None:
    async def run():
        config = _config_from_args(args)
        secret, nullifier = _voter_inputs(args)
        async with BallotProofPipeline(config) as pipeline:
            witness, tree, index, _ = await pipeline.prepare_witness(
                secret, nullifier
            )

        console.print(
            f"Commitment found at leaf {index} of {len(tree)}; "
            f"root {format_field(witness.root)}"
        )
        circuit_input = dict(witness.to_circuit_input())
        # Secrets reach the disk only when a file is asked for
        if not args.output:
            console.print_json(data=circuit_input)
            return
        save_json_output(circuit_input, args.output)
        console.print(
            "[yellow]The witness contains your secret and nullifier; "
            "keep the file private.[/yellow]"
        )

    asyncio.run(run())


def cmd_ballot_proof(args: argparse.Namespace) -> None:
    async def run():
        config = _config_from_args(args)
        if args.verify:
            config.verify_proofs = True
        secret, nullifier = _voter_inputs(args)
        async with BallotProofPipeline(config) as pipeline:
            ballot = await pipeline.generate_ballot_proof(secret, nullifier)

        if args.json:
            filename = args.output or generate_timestamped_filename("ballot_proof")
            save_json_output(ballot.to_dict(), filename)
            return

        console.print(
            Panel(
                f"Leaf: {ballot.leaf_index}/{ballot.leaf_count}\n"
                f"Root: {ballot.root}\n"
                f"Nullifier hash: {ballot.nullifier_hash}",
                title="Ballot proof",
            )
        )
        a, b, c, inputs = ballot.artifact.as_call_args()
        console.print(f"a: {a}")
        console.print(f"b: {b}")
        console.print(f"c: {c}")
        console.print(f"input: {inputs}")

    asyncio.run(run())


def cmd_cast_vote(args: argparse.Namespace) -> None:
    async def run():
        config = _config_from_args(args)
        secret, nullifier = _voter_inputs(args)
        if args.contestant_id < 0:
            raise ValueError("Invalid contestant_id: must not be negative")

        async with BallotProofPipeline(config) as pipeline:
            tx_hash, ballot = await pipeline.cast_vote(
                secret, nullifier, args.contestant_id
            )

        console.print(f"[green]✓ Vote cast for contestant {args.contestant_id}[/green]")
        console.print(f"Transaction: {tx_hash}")
        console.print(f"Nullifier hash: {format_field(ballot.nullifier_hash)}")

        if args.json:
            output = {"transaction_hash": tx_hash, **ballot.to_dict()}
            filename = args.output or generate_timestamped_filename("cast_vote")
            save_json_output(output, filename)

    asyncio.run(run())


def _add_election_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--rpc-url", type=str, help="RPC endpoint (ZKV_RPC_URL)")
    p.add_argument(
        "--contract", type=str, help="Election contract (ZKV_CONTRACT_ADDRESS)"
    )
    p.add_argument("--chain-id", type=int, help="Chain ID (ZKV_CHAIN_ID)")
    p.add_argument(
        "--start-block", type=int, help="First block to scan (ZKV_START_BLOCK)"
    )
    p.add_argument(
        "--tree-depth", type=int, help="Registry tree depth (ZKV_TREE_DEPTH)"
    )
    p.add_argument(
        "--hash",
        type=str,
        choices=list(RegistryConstants.HASH_FUNCTIONS),
        help="Tree hash function (ZKV_HASH_FUNCTION)",
    )
    p.add_argument("--json", action="store_true", help="Output JSON")
    p.add_argument("--output", type=str, help="Output filename")


def _add_voter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--secret", type=str, help="Voter secret (ZKV_SECRET)")
    p.add_argument(
        "--nullifier", type=str, help="Voter nullifier (ZKV_NULLIFIER)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zkvote",
        description="Unified CLI for zkVote Toolkit",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # registry-leaves
    p_rl = sub.add_parser(
        "registry-leaves", help="List registered commitments in order"
    )
    _add_election_args(p_rl)
    p_rl.set_defaults(func=cmd_registry_leaves)

    # registry-root
    p_rr = sub.add_parser(
        "registry-root",
        help="Rebuild the registry tree and compare with on-chain roots",
    )
    _add_election_args(p_rr)
    p_rr.set_defaults(func=cmd_registry_root)

    # ballot-witness
    p_bw = sub.add_parser(
        "ballot-witness", help="Assemble the circuit input for a voter"
    )
    _add_election_args(p_bw)
    _add_voter_args(p_bw)
    p_bw.set_defaults(func=cmd_ballot_witness)

    # ballot-proof
    p_bp = sub.add_parser("ballot-proof", help="Generate a Groth16 ballot proof")
    _add_election_args(p_bp)
    _add_voter_args(p_bp)
    p_bp.add_argument(
        "--circuits-dir", type=str, help="Circuit artifacts (ZKV_CIRCUITS_DIR)"
    )
    p_bp.add_argument(
        "--verify",
        action="store_true",
        help="Verify the proof locally before printing it",
    )
    p_bp.set_defaults(func=cmd_ballot_proof)

    # cast-vote
    p_cv = sub.add_parser("cast-vote", help="Prove and submit a ballot")
    _add_election_args(p_cv)
    _add_voter_args(p_cv)
    p_cv.add_argument("--contestant-id", type=int, required=True)
    p_cv.add_argument(
        "--circuits-dir", type=str, help="Circuit artifacts (ZKV_CIRCUITS_DIR)"
    )
    p_cv.set_defaults(func=cmd_cast_vote)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        set_log_level(logging.DEBUG)
    try:
        args.func(args)
    except Exception as e:
        handle_command_error(e)


if __name__ == "__main__":
    main()
