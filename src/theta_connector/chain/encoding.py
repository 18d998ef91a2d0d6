"""Key encoding shared with the contract."""

from __future__ import annotations

from web3 import Web3


def encode_key(word: str) -> str:
    """Return ``keccak256(abi.encodePacked(word))`` as a 0x-prefixed hex string."""
    return Web3.to_hex(Web3.solidity_keccak(["string"], [word]))
