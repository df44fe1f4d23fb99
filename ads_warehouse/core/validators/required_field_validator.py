"""
RequiredFieldValidator - ensures a record field is present and not null/blank.
"""

from typing import Any


class FieldValidationError(Exception):
    """Raised when a single field fails the required check."""

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        self.message = message
        super().__init__(f"[required_field] {field_name}: {message}")


class RequiredFieldValidator:
    """
    Validates that a required attribute of a record is present and not null.

    Fails if:
    - The record has no such attribute
    - The value is None
    - The value is a blank string (unless allow_empty_string is set)
    """

    def __init__(self, field_name: str, allow_empty_string: bool = False):
        self.field_name = field_name
        self.allow_empty_string = allow_empty_string

    def validate(self, record: Any) -> None:
        """
        Raises:
            FieldValidationError: If the field is missing, None, or blank
        """
        if not hasattr(record, self.field_name):
            raise FieldValidationError(self.field_name, "Field is missing from record")

        value = getattr(record, self.field_name)
        if value is None:
            raise FieldValidationError(self.field_name, "Field value is null")

        if not self.allow_empty_string and isinstance(value, str) and value.strip() == "":
            raise FieldValidationError(self.field_name, "Field value is empty string")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(field={self.field_name})"
