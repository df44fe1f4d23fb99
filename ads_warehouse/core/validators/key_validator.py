"""
KeyCompletenessValidator - rejects records with any null composite key component.
"""

from typing import Any, Callable, Sequence

from ads_warehouse.core.exceptions import ValidationError
from ads_warehouse.observability.logger import get_logger

from .required_field_validator import FieldValidationError, RequiredFieldValidator

logger = get_logger(__name__)

# Offending records listed in the error message; the full list is on the exception
MAX_REPORTED_RECORDS = 10


class KeyCompletenessValidator:
    """
    Checks every key column of every record in a batch.

    Args:
        key_columns: Attribute names of the composite key
        key_of: Optional key builder; when given, offending keys appear in the error message
    """

    def __init__(self, key_columns: Sequence[str], key_of: Callable[[Any], Any] | None = None):
        if not key_columns:
            raise ValueError("key_columns must not be empty")
        self.key_columns = list(key_columns)
        self.key_of = key_of
        self._validators = [RequiredFieldValidator(name) for name in self.key_columns]

    def missing_fields(self, record: Any) -> list[str]:
        """Key columns of one record that fail the required check."""
        missing = []
        for validator in self._validators:
            try:
                validator.validate(record)
            except FieldValidationError:
                missing.append(validator.field_name)
        return missing

    def find_invalid(self, records: Sequence[Any]) -> list[tuple[int, list[str]]]:
        """(index, missing fields) for every record with an incomplete key."""
        invalid = []
        for idx, record in enumerate(records):
            missing = self.missing_fields(record)
            if missing:
                invalid.append((idx, missing))
        return invalid

    def _describe(self, records: Sequence[Any], idx: int, fields: list[str]) -> str:
        text = f"#{idx} missing {'/'.join(fields)}"
        if self.key_of is not None:
            text += f" (key {self.key_of(records[idx])})"
        return text

    def validate_batch(self, records: Sequence[Any]) -> None:
        """
        Reject the batch if any record has an incomplete key.

        Raises:
            ValidationError: Listing the offending records by batch index
        """
        invalid = self.find_invalid(records)
        if not invalid:
            return

        sample = ", ".join(
            self._describe(records, idx, fields) for idx, fields in invalid[:MAX_REPORTED_RECORDS]
        )
        if len(invalid) > MAX_REPORTED_RECORDS:
            sample += f", ... ({len(invalid) - MAX_REPORTED_RECORDS} more)"

        logger.warning(f"Rejected batch: {len(invalid)} of {len(records)} records have incomplete keys")
        raise ValidationError(
            f"{len(invalid)} record(s) have null composite key components: {sample}",
            invalid_records=invalid,
        )
