"""Compare alza.cz prices across several logged-in accounts."""

__version__ = "0.1.0"
