"""
Wallet address helpers.
"""

from typing import Optional


def normalize_wallet(address: Optional[str]) -> str:
    """
    Canonical form of a wallet address used as a record key.

    EVM addresses (0x-prefixed hex) are case-insensitive and are lowercased;
    anything else is only stripped.
    """
    if not address:
        return ""
    address = address.strip()
    if address[:2].lower() == "0x":
        return address.lower()
    return address
