"""Validation result container."""

from .result import ValidationResult

__all__ = ["ValidationResult"]
