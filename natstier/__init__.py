"""Tiered storage coordination for message streams: data model, eviction policy and tier controller."""

__version__ = "0.1.0"