"""Event correlation: registry, dispatcher and the correlated call."""

from theta_connector.correlation.dispatcher import EventDispatcher
from theta_connector.correlation.protocol import CorrelatedCall
from theta_connector.correlation.registry import Continuation, EventRegistry

__all__ = ["Continuation", "CorrelatedCall", "EventDispatcher", "EventRegistry"]
