from typing import Union

from eth_utils import is_address, to_checksum_address

from zkvote_toolkit.merkle.hashing import to_field


def validate_eth_address(address: str, param_name: str = "address") -> str:
    """Validate and return checksum ethereum address"""
    if not address or not isinstance(address, str):
        raise ValueError(
            f"Invalid {param_name}: address must be a non-empty string"
        )
    if not is_address(address):
        raise ValueError(
            f"Invalid {param_name}: {address} is not a valid Ethereum address"
        )
    return to_checksum_address(address)


def validate_field_element(value: Union[int, str], param_name: str) -> int:
    """Validate a decimal or 0x-hex BN254 field element"""
    if value is None or value == "":
        raise ValueError(f"Invalid {param_name}: value is required")
    return to_field(value, param_name)


def validate_block_number(block: int, param_name: str = "block") -> int:
    if block < 0:
        raise ValueError(f"Invalid {param_name}: {block} must not be negative")
    return block


def validate_tree_depth(depth: int) -> int:
    if not 1 <= depth <= 32:
        raise ValueError(f"Invalid tree depth: {depth}. Must be between 1 and 32")
    return depth
