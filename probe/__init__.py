"""Probe server: tracks client liveness and notifies an operator."""

__version__ = "0.3.0"
