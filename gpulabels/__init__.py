"""Node labels and container allocation responses for GPU resources."""

__version__ = "0.17.0"