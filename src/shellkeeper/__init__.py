"""shellkeeper — persistent shell sessions with synchronous command results.

Commands are written to a long-lived interactive shell on a PTY (local,
or anything reached from it over ``ssh``) and bracketed with unique
markers, so each call returns clean output and an exit status as if it
were an RPC.  Files move through the same channel as base64.
"""

from shellkeeper.config import ShellKeeperConfig
from shellkeeper.service import ShellKeeper

__version__ = "0.1.0"

__all__ = [
    "ShellKeeper",
    "ShellKeeperConfig",
    "__version__",
]
