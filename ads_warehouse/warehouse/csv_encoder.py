"""
CSV row encoding for PostgreSQL COPY.

Rows are rendered from a TableMapping, so the header and every row share
one column list. Parameter tuples for the direct insert path come from the
same mapping.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from ads_warehouse.core.exceptions import EncodingError
from ads_warehouse.core.mapping import (
    ADS_REPORTING_MAPPING,
    ColumnSpec,
    TableMapping,
    collapse_line_breaks,
)

DELIMITER = ","
QUOTE = '"'
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def escape_csv(value: str) -> str:
    """
    Escape a text value for CSV.

    Line breaks become spaces. Values containing the delimiter or a quote,
    values that had line breaks, and empty strings are quote-wrapped with
    internal quotes doubled. Empty strings are quoted so COPY keeps them
    distinct from NULL.
    """
    cleaned = collapse_line_breaks(value)
    if (
        cleaned == ""
        or DELIMITER in cleaned
        or QUOTE in cleaned
        or cleaned != value
    ):
        return QUOTE + cleaned.replace(QUOTE, QUOTE * 2) + QUOTE
    return cleaned


def format_number(value: Any) -> str:
    """Plain, locale-independent decimal text (never scientific notation)."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        text = format(Decimal(repr(value)), "f")
        return text if "." in text else text + ".0"
    if isinstance(value, Decimal):
        return format(value, "f")
    raise TypeError(f"Not a number: {value!r}")


def format_value(column: ColumnSpec, value: Any) -> str:
    """Render one normalized value. None renders as an empty (NULL) field."""
    if value is None:
        return ""
    if column.type in ("integer", "float", "decimal"):
        return format_number(value)
    if column.type == "timestamp" and isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    if column.type == "date" and isinstance(value, date):
        return value.isoformat()
    return escape_csv(str(value))


class CsvRowEncoder:
    """
    Encodes records as comma-delimited rows matching a fixed header.

    Args:
        mapping: Column layout of the target table
    """

    def __init__(self, mapping: TableMapping = ADS_REPORTING_MAPPING):
        self.mapping = mapping
        self._header_fields = mapping.column_names
        self.header = DELIMITER.join(self._header_fields)

    @property
    def field_count(self) -> int:
        return len(self._header_fields)

    def encode_fields(self, record: Any) -> list[str]:
        """
        Render a record as a list of CSV fields.

        Raises:
            EncodingError: If the field count differs from the header's
        """
        values = self.mapping.values_of(record)
        fields = [format_value(c, v) for c, v in zip(self.mapping.columns, values)]
        if len(fields) != self.field_count:
            raise EncodingError(
                f"Row has {len(fields)} fields but header has {self.field_count}",
                expected=self.field_count,
                actual=len(fields),
            )
        return fields

    def encode(self, record: Any) -> str:
        """Render a record as one CSV row, without a trailing delimiter or newline."""
        return DELIMITER.join(self.encode_fields(record))

    __call__ = encode

    def parameters(self, record: Any) -> tuple:
        """
        Ordered parameter tuple for a parameterized INSERT with the header's columns.

        Raises:
            EncodingError: If the parameter count differs from the header's
        """
        params = tuple(self.mapping.values_of(record))
        if len(params) != self.field_count:
            raise EncodingError(
                f"Parameter tuple has {len(params)} values but header has {self.field_count}",
                expected=self.field_count,
                actual=len(params),
            )
        return params

    def validate_header(self, header: str) -> list[str]:
        """
        Check that a caller-supplied header names exactly this encoder's columns, in order.

        Returns:
            The header's column names

        Raises:
            EncodingError: On any count or order mismatch
        """
        fields = [f.strip() for f in header.strip().split(DELIMITER)]
        if len(fields) != self.field_count:
            raise EncodingError(
                f"Header has {len(fields)} fields but rows have {self.field_count}",
                expected=self.field_count,
                actual=len(fields),
            )
        if fields != self._header_fields:
            mismatched = next(
                i for i, (a, b) in enumerate(zip(fields, self._header_fields)) if a != b
            )
            raise EncodingError(
                f"Header column #{mismatched} is '{fields[mismatched]}' "
                f"but rows encode '{self._header_fields[mismatched]}'"
            )
        return fields
