"""Uniform success/error/warning container returned by every validator."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List


@dataclass
class ValidationResult:
    """Outcome of a validation pass.

    Expected failures are expressed as entries in ``errors``; a
    ValidationResult is never raised.

    Attributes:
        is_valid: False as soon as one error is present
        errors: Blocking problems
        warnings: Advisory problems that do not block execution
    """

    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, warnings: Iterable[str] = ()) -> "ValidationResult":
        return cls(True, [], list(warnings))

    @classmethod
    def failure(cls, *errors: str, warnings: Iterable[str] = ()) -> "ValidationResult":
        return cls(False, list(errors), list(warnings))

    def add_error(self, message: str) -> "ValidationResult":
        self.errors.append(message)
        self.is_valid = False
        return self

    def add_warning(self, message: str) -> "ValidationResult":
        self.warnings.append(message)
        return self

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        """Fold ``other`` into this result in place."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.is_valid = self.is_valid and other.is_valid and not self.errors
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": list(self.errors), "warnings": list(self.warnings)}

    def __bool__(self) -> bool:
        return self.is_valid
