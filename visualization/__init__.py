"""cloudray: Visualization Package."""
