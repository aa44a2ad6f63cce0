"""
clusterauth — Systems
"""
