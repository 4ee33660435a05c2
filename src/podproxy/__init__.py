"""podproxy: a read-through caching proxy that renders feeds as HTML pages."""

__version__ = "0.1.0"
