"""Ambient infrastructure: configuration, logging, observability and metrics."""
