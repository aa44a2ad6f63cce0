"""
clusterauth — External Service Clients

Connection management for the shared user store.
"""

from clusterauth.clients.user_store import PostgresUserStore, UserStore, connect_user_store

__all__ = [
    "PostgresUserStore",
    "UserStore",
    "connect_user_store",
]
