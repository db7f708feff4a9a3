"""idbridge: credential sessions, refresh-token rotation and Discord identity linking."""

__version__ = "0.1.0"
