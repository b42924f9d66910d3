"""Shared formatting and file utilities for commands."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from rich.console import Console
from rich.table import Table

from taas_explorer.shared.types import CorrelatedRecord

# Shared console instance
console = Console()


def format_address(address: str, length: int = 10) -> str:
    """
    Shorten a hex address or id to its first and last characters.

    Args:
        address: Address, trader id or hash
        length: Values up to this length are returned unchanged

    Returns:
        Formatted value like "0x1234...5678"
    """
    if not address:
        return "N/A"
    if len(address) <= length:
        return address
    return f"{address[:6]}...{address[-4:]}"


def generate_timestamped_filename(prefix: str, extension: str = "json") -> str:
    """Filename like "prefix_20240315_123456.json"."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{timestamp}.{extension}"


def save_json_output(
    data: Any,
    filename: str,
    output_dir: str = "output",
    print_path: bool = True,
) -> str:
    """
    Save data to a JSON file with automatic directory creation.

    Args:
        data: Data to save
        filename: Output filename (can include subdirectories)
        output_dir: Base output directory (default: 'output')
        print_path: Whether to print the saved file path

    Returns:
        Full path to saved file
    """
    output_path = Path(output_dir)
    filepath = output_path / filename
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w") as f:
        json.dump(data, f, indent=2)

    if print_path:
        console.print(f"[cyan]Data saved to:[/cyan] {filepath}")

    return str(filepath)


def create_proofs_table() -> Table:
    """Rich table with the proof record columns."""
    table = Table(
        show_header=True,
        header_style="bold cyan",
        show_lines=False,
        pad_edge=False,
        box=None,
    )
    table.add_column("Epoch", width=8, justify="right")
    table.add_column("Trader", width=14)
    table.add_column("Block", width=10, justify="right")
    table.add_column("Data", width=5, justify="center")
    table.add_column("Risk", width=5, justify="center")
    table.add_column("Merkle root", width=14)
    return table


def add_proof_to_table(table: Table, record: CorrelatedRecord) -> None:
    data_events = record.get("dataEvents") or []
    merkle_root = ""
    if data_events and isinstance(data_events[0].get("data"), dict):
        merkle_root = data_events[0]["data"].get("merkleRoot") or ""

    block = record.get("blockNumber")
    table.add_row(
        str(record.get("epoch")),
        format_address(record.get("traderId")),
        "-" if block is None else str(block),
        str(len(data_events)),
        str(len(record.get("riskEvents") or [])),
        format_address(merkle_root),
    )


def format_consensus_flag(has_consensus: bool) -> str:
    if has_consensus:
        return "[green]✓ consensus[/green]"
    return "[yellow]no consensus[/yellow]"


def summarize_counts(aggregate: Dict[str, Any]) -> str:
    return f"{aggregate['count']}/{aggregate['total']} attesters"
