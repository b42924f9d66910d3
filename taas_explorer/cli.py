#!/usr/bin/env python3
"""
Unified CLI for the TaaS explorer toolkit.

Examples:
  - Latest active block of the Attestations contract
    taas-explorer latest-block --rpc-url https://... --address 0x... [--no-cache]

  - Browse correlated proof records
    taas-explorer proofs --page 0 --page-size 25
    taas-explorer proofs --page 3 --no-graphql --json

  - Attester consensus of a cached record
    taas-explorer consensus --trader-id 0x... --epoch 42
"""

import argparse
import asyncio
from typing import List, Optional

from taas_explorer.commands.helpers import handle_command_error
from taas_explorer.commands.validation import (
    validate_eth_address,
    validate_page_size,
    validate_trader_id,
)
from taas_explorer.proofs import (
    FallbackFetcher,
    GraphQLFetcher,
    LatestBlockCache,
    ProofsCache,
    ProofsPagination,
    RPCFetcher,
    fetch_record_consensus,
    find_latest_active_block,
)
from taas_explorer.shared.constants import GlobalConstants, PaginationConfig
from taas_explorer.shared.services.http_client import aclose_async_client
from taas_explorer.utils.formatters import (
    add_proof_to_table,
    console,
    create_proofs_table,
    format_address,
    format_consensus_flag,
    generate_timestamped_filename,
    save_json_output,
    summarize_counts,
)
from taas_explorer.utils.storage import FileStorage


def _chain_config(args: argparse.Namespace, use_graphql=None):
    address = getattr(args, "address", None)
    if address:
        address = validate_eth_address(address, "address")
    return GlobalConstants.get_chain_config(
        rpc_url=getattr(args, "rpc_url", None),
        attestation_address=address,
        use_graphql=use_graphql,
    )


def cmd_latest_block(args: argparse.Namespace) -> None:
    async def run():
        config = _chain_config(args)
        block_cache = LatestBlockCache(FileStorage(GlobalConstants.CACHE_DIR))

        if not args.no_cache:
            cached = block_cache.get_cached_latest_active_block(
                config.rpc_url, config.attestation_address
            )
            if cached is not None:
                console.print(f"Latest active block: {cached} [dim](cached)[/dim]")
                return

        with console.status("Scanning backward for attestation activity..."):
            block = await find_latest_active_block(
                config.rpc_url, config.attestation_address, args.batch_size
            )
        block_cache.cache_latest_active_block(
            config.rpc_url, config.attestation_address, block
        )

        if block == 0:
            console.print("[yellow]No attestation activity found[/yellow]")
        else:
            console.print(f"Latest active block: {block}")

    asyncio.run(run())


def cmd_proofs(args: argparse.Namespace) -> None:
    async def run():
        page_size = validate_page_size(args.page_size)
        config = _chain_config(
            args, use_graphql=False if args.no_graphql else None
        )
        storage = FileStorage(GlobalConstants.CACHE_DIR)
        fetcher = FallbackFetcher(
            GraphQLFetcher(),
            RPCFetcher(block_cache=LatestBlockCache(storage)),
        )
        pagination = ProofsPagination(
            page_size, config, cache=ProofsCache(storage), fetcher=fetcher
        )

        try:
            with console.status("Loading proofs..."):
                if args.page is None:
                    await pagination.load()
                else:
                    await pagination.handle_page_change(None, args.page)
        finally:
            await aclose_async_client()

        if pagination.error:
            console.print(
                f"[yellow]⚠ Fetch failed, showing cached records:[/yellow] "
                f"{pagination.error}"
            )

        records = pagination.proofs
        if args.json:
            filename = args.output or generate_timestamped_filename("proofs")
            save_json_output(
                {
                    "page": pagination.page,
                    "page_size": page_size,
                    "total_items": pagination.total_items,
                    "has_more": pagination.has_more,
                    "proofs": records,
                },
                filename,
            )
            return

        table = create_proofs_table()
        for record in records:
            add_proof_to_table(table, record)
        console.print(table)

        more = "+" if pagination.has_more else ""
        console.print(
            f"Page {pagination.page + 1}/{max(pagination.total_pages, 1)}{more}"
            f" | {pagination.total_items} records cached"
        )

    asyncio.run(run())


def cmd_consensus(args: argparse.Namespace) -> None:
    async def run():
        trader_id = validate_trader_id(args.trader_id).lower()
        config = _chain_config(args)
        cache = ProofsCache(FileStorage(GlobalConstants.CACHE_DIR))

        record = next(
            (
                r
                for r in cache.proofs
                if str(r["traderId"]).lower() == trader_id
                and int(r["epoch"]) == args.epoch
            ),
            None,
        )
        if record is None:
            raise ValueError(
                f"No cached record for trader {trader_id} at epoch "
                f"{args.epoch}; run `taas-explorer proofs` first"
            )

        result = await fetch_record_consensus(config, record)
        if args.json:
            filename = args.output or generate_timestamped_filename(
                "consensus"
            )
            save_json_output(result, filename)
            return

        console.print(
            f"[bold]Trader {format_address(result['traderId'])} | "
            f"epoch {result['epoch']}[/bold]"
        )
        data = result["data"]
        if data is None:
            console.print("Data: [dim]no data attestations[/dim]")
        else:
            console.print(
                f"Data: merkle root {format_address(data['merkleRoot'])} "
                f"({summarize_counts(data)}) "
                f"{format_consensus_flag(data['hasConsensus'])}"
            )

        for parameter_id, risk in result["risk"].items():
            console.print(
                f"Risk parameter {parameter_id}: value {risk['value']} "
                f"({summarize_counts(risk)}) "
                f"{format_consensus_flag(risk['hasConsensus'])}"
            )

    asyncio.run(run())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taas-explorer",
        description="Unified CLI for the TaaS explorer toolkit",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def add_chain_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--rpc-url", type=str, help="Overrides TAAS_RPC_URL")
        p.add_argument(
            "--address",
            type=str,
            help="Attestations contract, overrides TAAS_ATTESTATION_ADDRESS",
        )

    # latest-block
    p_lb = sub.add_parser(
        "latest-block", help="Find the latest block with attestation logs"
    )
    add_chain_args(p_lb)
    p_lb.add_argument(
        "--batch-size", type=int, default=GlobalConstants.BLOCK_STEP_SIZE
    )
    p_lb.add_argument(
        "--no-cache", action="store_true", help="Ignore the cached value"
    )
    p_lb.set_defaults(func=cmd_latest_block)

    # proofs
    p_pr = sub.add_parser("proofs", help="List correlated proof records")
    add_chain_args(p_pr)
    p_pr.add_argument("--page", type=int, help="0-indexed page to show")
    p_pr.add_argument(
        "--page-size", type=int, default=PaginationConfig.DEFAULT_ROWS
    )
    p_pr.add_argument(
        "--no-graphql", action="store_true", help="Read from RPC only"
    )
    p_pr.add_argument("--json", action="store_true", help="Output JSON")
    p_pr.add_argument("--output", type=str, help="Output filename")
    p_pr.set_defaults(func=cmd_proofs)

    # consensus
    p_co = sub.add_parser(
        "consensus", help="Attester consensus for a cached record"
    )
    add_chain_args(p_co)
    p_co.add_argument("--trader-id", type=str, required=True)
    p_co.add_argument("--epoch", type=int, required=True)
    p_co.add_argument("--json", action="store_true", help="Output JSON")
    p_co.add_argument("--output", type=str, help="Output filename")
    p_co.set_defaults(func=cmd_consensus)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except Exception as e:
        handle_command_error(e)


if __name__ == "__main__":
    main()
