"""Command groups for the clusterward CLI."""
