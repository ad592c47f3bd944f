"""Save and restore git work in progress as snapshot branches."""

__version__ = "0.1.0"
