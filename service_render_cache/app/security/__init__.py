"""
Safety relaxations that let cached output be shared across requests.
"""

from .forgery import ForgeryGate, ForgeryProtectionStrategy
from .isolation import RequestIsolationGuard, with_isolated_session

__all__ = [
    "ForgeryGate",
    "ForgeryProtectionStrategy",
    "RequestIsolationGuard",
    "with_isolated_session",
]
