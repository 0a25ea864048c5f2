"""Client-side queue engine for batch media conversion."""

__version__ = "0.1.0"
