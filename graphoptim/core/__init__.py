"""Core factor graph optimization modules."""
