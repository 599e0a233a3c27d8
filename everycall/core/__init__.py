"""Shared data models and wire contracts."""
