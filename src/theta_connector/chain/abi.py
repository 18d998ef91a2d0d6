"""Bundled ABI of the queueing contract and an artifact loader."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from theta_connector.core.errors import ConfigError


def _fn(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[str] | None = None,
    mutability: str = "nonpayable",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in outputs or []],
        "stateMutability": mutability,
    }


def _event(name: str, inputs: list[tuple[str, str]]) -> dict[str, Any]:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": False} for n, t in inputs],
    }


BUG_SHOW_ABI: list[dict[str, Any]] = [
    _fn("allocateUser", [("sessionID", "string"), ("encodedKey", "bytes32")]),
    _fn("addToLine", [("userID", "uint256")]),
    _fn("peek", []),
    _fn("rewardGameToken", [("userID", "uint256"), ("url", "string")]),
    _fn("rewardPoints", [("userID", "uint256"), ("points", "uint256")]),
    _fn("line_turn", [("", "uint256")], ["uint256"], "view"),
    _fn("first_in_line", [], ["uint256"], "view"),
    _event("userAllocated", [("sessionID", "string"), ("userID", "uint256")]),
    _event("turnAssigned", [("userID", "uint256"), ("turn", "uint256")]),
    _event("linePeeked", [("userID", "uint256")]),
    _event("tokenRewarded", [("userID", "uint256"), ("tokenId", "uint256")]),
    _event("pointsRewarded", [("userID", "uint256"), ("points", "uint256")]),
]


def load_abi(path: str | Path | None = None) -> list[dict[str, Any]]:
    """Return the ABI from a compiled artifact, or the bundled one.

    Accepts either a Hardhat/Truffle artifact (an object with an ``abi``
    field) or a bare ABI list.
    """
    if not path:
        return BUG_SHOW_ABI
    artifact_path = Path(path)
    try:
        with open(artifact_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read contract artifact {artifact_path}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("abi")
    if not isinstance(data, list):
        raise ConfigError(f"No ABI found in {artifact_path}")
    return data
