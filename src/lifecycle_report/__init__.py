"""Component lifecycle and package usage statistics from device diagnostic traces."""

__version__ = "1.0.0"
