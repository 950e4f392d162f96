"""docsite: generate and maintain a documentation site from a source tree."""

__version__ = "0.1.0"

__all__ = ["__version__"]
