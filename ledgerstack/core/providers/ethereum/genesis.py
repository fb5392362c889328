"""Clique proof-of-authority genesis documents for geth and besu."""

from __future__ import annotations

from typing import Any

INITIAL_BALANCE = "0x200000000000000000000000000000000000000000000000000000000000000"
GAS_LIMIT = "0x47b760"
TIMESTAMP = "0x60edb1c7"
ZERO_HASH = "0x" + "0" * 64

_VANITY = "0" * 64          # 32 bytes
_SIGNATURE = "0" * 130      # 65 bytes


def clique_extra_data(signers: list[str]) -> str:
    """extraData = vanity ‖ signer addresses ‖ empty seal."""
    return "0x" + _VANITY + "".join(a.removeprefix("0x").lower() for a in signers) + _SIGNATURE


def create_genesis(
    signers: list[str],
    funded: list[str],
    chain_id: int,
    *,
    flavour: str = "geth",
    block_period: int = 0,
) -> dict[str, Any]:
    """Build a genesis document.

    Args:
        signers: Clique sealer addresses.
        funded: Addresses given an initial balance.
        flavour: ``geth`` or ``besu`` (they spell the clique config differently).
        block_period: Seconds between blocks (0 = seal on demand, geth only).
    """
    if flavour == "besu":
        config: dict[str, Any] = {
            "chainId": chain_id,
            "constantinopleFixBlock": 0,
            "clique": {"blockperiodseconds": max(block_period, 1), "epochlength": 30000},
        }
    else:
        config = {
            "chainId": chain_id,
            "homesteadBlock": 0,
            "eip150Block": 0,
            "eip150Hash": ZERO_HASH,
            "eip155Block": 0,
            "eip158Block": 0,
            "byzantiumBlock": 0,
            "constantinopleBlock": 0,
            "petersburgBlock": 0,
            "istanbulBlock": 0,
            "clique": {"period": block_period, "epoch": 30000},
        }

    return {
        "config": config,
        "nonce": "0x0",
        "timestamp": TIMESTAMP,
        "extraData": clique_extra_data(signers),
        "gasLimit": GAS_LIMIT,
        "difficulty": "0x1",
        "mixHash": ZERO_HASH,
        "coinbase": "0x" + "0" * 40,
        "alloc": {a.removeprefix("0x").lower(): {"balance": INITIAL_BALANCE} for a in funded},
        "number": "0x0",
        "gasUsed": "0x0",
        "parentHash": ZERO_HASH,
    }
