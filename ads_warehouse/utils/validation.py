"""
Input validation utilities for the ingestion engine.

Table and column names are interpolated into SQL as identifiers, so every
name supplied by a caller is checked here before any statement is built.
"""

import re
from typing import Sequence

from ads_warehouse.core.exceptions import ValidationError

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

# PostgreSQL truncates identifiers beyond this length
MAX_IDENTIFIER_LENGTH = 63

RESERVED_KEYWORDS = {
    "select", "insert", "update", "delete", "drop", "create", "alter",
    "table", "database", "index", "view", "user", "grant", "revoke"
}


def sanitize_sql_identifier(identifier: str, field_name: str = "identifier") -> str:
    """
    Sanitize an SQL identifier (table name, column name, etc.).

    Args:
        identifier: The identifier to sanitize
        field_name: Name of the argument (for error messages)

    Returns:
        The validated identifier, stripped of whitespace

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> sanitize_sql_identifier("tbl_ads_reporting")
        'tbl_ads_reporting'
        >>> sanitize_sql_identifier("tbl; DROP TABLE x;")  # doctest: +SKIP
        ValidationError: identifier contains invalid characters
    """
    if not identifier or not isinstance(identifier, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    identifier = identifier.strip()

    if not IDENTIFIER_PATTERN.match(identifier):
        raise ValidationError(
            f"{field_name} '{identifier}' contains invalid characters. "
            "SQL identifiers must start with a letter or underscore and contain only "
            "alphanumeric characters and underscores."
        )

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f"{field_name} exceeds PostgreSQL maximum length of {MAX_IDENTIFIER_LENGTH} characters"
        )

    if identifier.lower() in RESERVED_KEYWORDS:
        raise ValidationError(
            f"{field_name} '{identifier}' is a reserved SQL keyword. "
            "Please use a different name."
        )

    return identifier


def validate_load_columns(
    columns: Sequence[str],
    key_columns: Sequence[str],
    update_columns: Sequence[str],
) -> None:
    """
    Validate the column lists of an ingestion call.

    Args:
        columns: Columns carried by every row, in row order
        key_columns: Columns of the target's uniqueness constraint
        update_columns: Columns overwritten when a key already exists

    Raises:
        ValidationError: If a list is malformed or the lists are inconsistent
    """
    for name in columns:
        sanitize_sql_identifier(name, "column")

    if not key_columns:
        raise ValidationError("key_columns must not be empty")

    for label, names in (("key_columns", key_columns), ("update_columns", update_columns)):
        if len(set(names)) != len(names):
            raise ValidationError(f"{label} contains duplicate names")
        unknown = [n for n in names if n not in columns]
        if unknown:
            raise ValidationError(f"{label} not present in rows: {', '.join(unknown)}")

    overlap = [n for n in update_columns if n in key_columns]
    if overlap:
        raise ValidationError(f"Key columns cannot be update columns: {', '.join(overlap)}")


def validate_threshold(threshold: int, field_name: str = "copy_from_threshold") -> int:
    """
    Validate a strategy threshold.

    Raises:
        ValidationError: If threshold is not a positive integer
    """
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ValidationError(f"{field_name} must be an integer, got {type(threshold).__name__}")

    if threshold < 1:
        raise ValidationError(f"{field_name} must be a positive integer, got {threshold}")

    return threshold
