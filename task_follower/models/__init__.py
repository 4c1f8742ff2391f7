"""Service-layer result models."""
