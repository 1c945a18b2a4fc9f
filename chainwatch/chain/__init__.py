"""Chain capability interfaces and the factory hook that supplies them."""

from __future__ import annotations

import importlib
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Union

from chainwatch.chain.base import (
    Bridge,
    ChainCapabilities,
    ChainProvider,
    DepositHandle,
    TxHandle,
    Wallet,
)

__all__ = [
    "Bridge",
    "ChainCapabilities",
    "ChainFactory",
    "ChainProvider",
    "DepositHandle",
    "TxHandle",
    "Wallet",
    "build_capabilities",
    "load_chain_factory",
]

ChainFactory = Callable[[Any], Union[ChainCapabilities, Awaitable[ChainCapabilities]]]


def load_chain_factory(path: str) -> ChainFactory:
    """Import a chain factory from a ``"package.module:callable"`` path."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Chain factory must look like 'package.module:callable', got {path!r}")
    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Module '{module_name}' has no attribute '{attr}'") from None
    if not callable(factory):
        raise ValueError(f"Chain factory {path!r} is not callable")
    return factory  # type: ignore[no-any-return]


async def build_capabilities(factory: ChainFactory, settings: Any) -> ChainCapabilities:
    """Call *factory* with *settings*, awaiting it if it is asynchronous."""
    result = factory(settings)
    if inspect.isawaitable(result):
        result = await result
    if not isinstance(result, ChainCapabilities):
        raise TypeError(
            f"Chain factory returned {type(result).__name__}, expected ChainCapabilities"
        )
    return result
