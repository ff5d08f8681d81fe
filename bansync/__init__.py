"""Ban list synchronization across server processes through a shared table."""

__version__ = "2.1.0"
