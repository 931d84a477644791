"""UDP Relay – a minimal connectionless multi‑user text relay.

Importing this package exposes :class:`udprelay.UDPRelayServer` and
:class:`udprelay.UDPRelayClient`, allowing the whole stack to be embedded in
another application or launched via the ``udprelay-server`` /
``udprelay-client`` console scripts.
"""

# ------------------------ re-exports ------------------------
from .client import UDPRelayClient   # noqa: F401  ── re-export client class
from .directory import UserDirectory # noqa: F401
from .server import UDPRelayServer   # noqa: F401  ── re-export server class

# ------------------------ public API ------------------------
__all__: list[str] = [
    "UDPRelayClient",  # Terminal client (text, colors, name lookup)
    "UDPRelayServer",  # Relay actor + receive thread
    "UserDirectory",   # In-memory address/id ➜ user index
]
