"""Customer identity resolution for the travel booking platform."""

__version__ = "0.1.0"
