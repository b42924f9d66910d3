from eth_utils import is_address, to_checksum_address

from taas_explorer.shared.constants import PaginationConfig


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


def validate_page_size(page_size: int) -> int:
    if not 1 <= page_size <= PaginationConfig.MAX_ROWS:
        raise ValueError(
            f"Invalid page size: {page_size}. Must be between 1 and "
            f"{PaginationConfig.MAX_ROWS}"
        )
    return page_size


def validate_trader_id(trader_id: str) -> str:
    """Return the trader id 0x-prefixed, whether or not it was given so"""
    if not trader_id:
        raise ValueError("Invalid trader id: must be a non-empty string")
    value = trader_id if trader_id.startswith("0x") else f"0x{trader_id}"
    try:
        int(value, 16)
    except ValueError:
        raise ValueError(f"Invalid trader id: {trader_id} is not hex")
    return value
