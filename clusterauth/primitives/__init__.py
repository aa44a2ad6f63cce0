"""
clusterauth — Primitives

Shared data types passed between the loader and the bootstrap subsystem.
"""
