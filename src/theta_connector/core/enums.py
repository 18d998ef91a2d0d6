"""Enumerations used across the connector."""

from enum import Enum


class EventKind(str, Enum):
    """On-chain event kinds the connector correlates.

    Values are the contract's event names.
    """

    USER_ALLOCATED = "userAllocated"
    TURN_ASSIGNED = "turnAssigned"
    LINE_PEEKED = "linePeeked"
    TOKEN_REWARDED = "tokenRewarded"
    POINTS_REWARDED = "pointsRewarded"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class NetworkName(str, Enum):
    LOCAL_HARDHAT = "local_hardhat"
    THETA_PRIVATENET = "theta_privatenet"
    THETA_TESTNET = "theta_testnet"
    THETA_MAINNET = "theta_mainnet"


class DuplicatePolicy(str, Enum):
    """What the registry does when a live (kind, key) is registered again."""

    OVERWRITE = "overwrite"  # last writer wins, first caller never resolves
    REJECT = "reject"  # raise CallInFlightError
