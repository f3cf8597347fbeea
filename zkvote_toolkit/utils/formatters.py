"""Shared formatting and file utilities for commands."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from hexbytes import HexBytes
from rich.console import Console

# Shared console instance
console = Console()


def to_0x_hex(value: Any) -> str:
    """
    Hex-encode bytes, HexBytes or a hex string with a single 0x prefix.

    hexbytes changed whether `.hex()` includes the prefix, so never rely on it.
    """
    return "0x" + HexBytes(value).hex().removeprefix("0x")


def format_field(value: Any, length: int = 12) -> str:
    """
    Shorten a large field element for display.

    Args:
        value: int or decimal string
        length: visible digits on each side

    Returns:
        Formatted value like "123456789012...987654321098"
    """
    text = str(value)
    if len(text) <= 2 * length + 3:
        return text
    return f"{text[:length]}...{text[-length:]}"


def save_json_output(
    data: Dict[str, Any],
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


def generate_timestamped_filename(prefix: str, extension: str = "json") -> str:
    """Filename like "prefix_20240315_123456.json"."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{timestamp}.{extension}"
