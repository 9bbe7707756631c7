"""mklv.tech warmer: keeps labelled Cloud Run services warm."""

__version__ = "0.1.0"
