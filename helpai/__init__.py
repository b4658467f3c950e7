"""Help AI study backend."""
