"""Return channel transports."""

from __future__ import annotations

import os
from typing import Callable, Optional

from ..config import DocrouteConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport


def _redis_transport(config: DocrouteConfig) -> BaseTransport:
    from .redis import RedisTransport

    settings = config.transport.redis
    return RedisTransport(
        host=settings.host, port=settings.port, db=settings.db, password=settings.password
    )


_BUILDERS: dict[str, Callable[[DocrouteConfig], BaseTransport]] = {
    "inmemory": lambda _config: InMemoryTransport(),
    "redis": _redis_transport,
}


def get_transport(
    backend: Optional[str] = None, config: Optional[DocrouteConfig] = None
) -> BaseTransport:
    """Build the transport returns are pushed on.

    The backend comes from the argument, then ``DOCROUTE_TRANSPORT``, then
    ``transport.backend`` in the configuration.
    """
    config = config or load_config()
    name = (backend or os.getenv("DOCROUTE_TRANSPORT") or config.transport.backend).lower()
    try:
        builder = _BUILDERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown return transport '{name}' (expected one of: {', '.join(sorted(_BUILDERS))})"
        ) from None
    return builder(config)


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]
