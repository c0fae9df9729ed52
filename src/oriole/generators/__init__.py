"""Generators for different frameworks."""

from .pydantic import create_pydantic_model

__all__ = [
    "create_pydantic_model",
]
