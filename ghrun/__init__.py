"""ghrun: run GitHub Actions job steps locally."""

__version__ = "0.1.0"
