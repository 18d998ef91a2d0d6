"""Application bootstrap.

Loads settings, configures logging, connects a ``ThetaConnector`` and
runs a single operation against it.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from .connector import ClientFactory, ThetaConnector
from .core.config import Settings, load_settings
from .core.errors import NotConnectedError
from .observability.logger import setup_logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_settings(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings and configure logging from them."""
    settings = load_settings(config_path=config_path, overrides=overrides)
    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )
    return settings


async def run(
    settings: Settings,
    operation: Callable[[ThetaConnector], Awaitable[T]],
    client_factory: ClientFactory | None = None,
) -> T:
    """Connect, run *operation*, and always close the connection."""
    connector = ThetaConnector(settings, client_factory=client_factory)
    try:
        if not await connector.init():
            raise NotConnectedError(
                f"Could not connect to {settings.network.value}; see log for details"
            )
        return await operation(connector)
    finally:
        await connector.close()
        logger.info("Shutdown complete")
