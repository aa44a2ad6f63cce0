"""
clusterauth — Node Identity & Credential Bootstrap

Provisions every node of a cluster with the shared signing keypair and
root-scoped database credentials before it starts serving traffic.
"""

__version__ = "0.1.0"
