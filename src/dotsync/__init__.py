"""dotsync: back up and sync configuration files across machines."""

__version__ = "0.1.0"
