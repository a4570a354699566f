"""Shared state-machine pattern."""
