"""Content build orchestration for generated local service business sites."""

__version__ = "0.1.0"

__all__ = ["__version__"]
