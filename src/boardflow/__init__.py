"""Boardflow: trigger, condition and action automation for kanban boards."""

__version__ = "0.1.0"
