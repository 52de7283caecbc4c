"""KTP: a reliable, windowed message transport over UDP with a socket-style API,
an in-process daemon, and file-transfer and demonstration commands."""

__version__ = "0.1.0"

__all__ = ["__version__"]