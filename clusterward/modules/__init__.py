"""
Cluster maintenance modules.
"""
