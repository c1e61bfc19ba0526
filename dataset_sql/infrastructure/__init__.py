"""
Infrastructure package for dataset exports.

Centralizes destination connectivity concerns (async pool, statement
execution) and the optional proxy tunnel. Keep this layer focused on I/O and
resource management, decoupled from loading/statement logic.
"""

from dataset_sql.infrastructure.db_factory import Destination, build_conninfo, open_pool
from dataset_sql.infrastructure.tunnel import ProxyTunnel, ProxyTunnelError

__all__ = [
    "Destination",
    "ProxyTunnel",
    "ProxyTunnelError",
    "build_conninfo",
    "open_pool",
]
