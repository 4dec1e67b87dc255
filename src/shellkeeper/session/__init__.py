"""Sessions — named shells with Ready/Busy state, and their registry."""

from shellkeeper.session.registry import SessionRegistry
from shellkeeper.session.session import Session, SessionState

__all__ = [
    "Session",
    "SessionRegistry",
    "SessionState",
]
