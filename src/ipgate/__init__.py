"""ipgate - IP allow-list guard for HTTP services."""

__version__ = "0.1.0"
