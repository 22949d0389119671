"""Transaction validation module."""
from .validator import TransactionValidator, ValidationResult

__all__ = ["TransactionValidator", "ValidationResult"]
