"""NGSI-LD source operator."""

__version__ = "1.0.0"
