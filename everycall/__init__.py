"""EveryCall inbound call routing services."""

__version__ = "0.1.0"
