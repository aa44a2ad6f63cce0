"""
clusterauth — Telemetry
"""
