"""Clusterward - self-managing cluster operator."""

__version__ = "0.1.0"
