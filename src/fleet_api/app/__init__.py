"""Application wiring: dependencies and lifecycles."""
