"""Correlates queueing-contract transactions with the events they emit."""

from theta_connector.chain.encoding import encode_key
from theta_connector.connector import ThetaConnector
from theta_connector.core.config import Settings, load_settings
from theta_connector.core.enums import ConnectionState, EventKind, NetworkName
from theta_connector.core.models import Allocation, LineMember

__all__ = [
    "Allocation",
    "ConnectionState",
    "EventKind",
    "LineMember",
    "NetworkName",
    "Settings",
    "ThetaConnector",
    "encode_key",
    "load_settings",
]

__version__ = "0.1.0"
