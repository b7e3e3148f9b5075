"""Invoice email dispatch backend."""

__version__ = "0.1.0"
