"""xpapi — batch command API engine."""

__version__ = "1.2.0"
