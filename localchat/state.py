"""Centralised in-memory runtime state.

This keeps the singletons that are shared across the whole application so
routers can simply import them without worrying about circular imports.
Presence lives only here; it starts empty on every boot.
"""
from __future__ import annotations

from .config import get_settings
from .core import ChatCore
from .gateway import TortoiseGateway

gateway = TortoiseGateway()
core = ChatCore(gateway, get_settings())

__all__ = ["gateway", "core"]
