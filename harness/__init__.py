"""Load generation harness for the template API."""

__version__ = "0.1.0"
