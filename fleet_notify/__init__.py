"""Push and in-app notification dispatch service."""

__version__ = "0.1.0"
