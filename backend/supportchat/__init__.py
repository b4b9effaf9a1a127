"""Support chat backend: customer <-> admin real-time chat."""

__version__ = "0.1.0"
