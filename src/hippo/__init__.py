"""Hippo: tool-calling assistant orchestration for the scene editor."""

__all__ = ["__version__"]

__version__ = "0.1.0"
