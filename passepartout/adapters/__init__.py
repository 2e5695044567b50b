"""Adapters package - Bridge between the agent engine and UI frontends.

This package contains the bridge facade, the status projector, the
request dispatcher and the status bus that feeds UI subscribers.
"""
from __future__ import annotations

__all__ = [
    "AgentBridge",
    "RequestDispatcher",
    "StatusBus",
    "StatusProjector",
]

from passepartout.adapters.bridge import AgentBridge
from passepartout.adapters.dispatcher import RequestDispatcher
from passepartout.adapters.projector import StatusProjector
from passepartout.adapters.status_bus import StatusBus
