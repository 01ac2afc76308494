"""Training loop, metrics and pipeline assembly."""
