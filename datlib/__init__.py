"""datlib — a local library of distributed, content-addressed archives."""

__version__ = "0.1.0"
