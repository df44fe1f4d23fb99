"""
Record validators.

Provides the required-field check and the batch-level composite key
completeness check built on it.
"""

from .key_validator import KeyCompletenessValidator
from .required_field_validator import FieldValidationError, RequiredFieldValidator

__all__ = [
    "FieldValidationError",
    "RequiredFieldValidator",
    "KeyCompletenessValidator",
]
