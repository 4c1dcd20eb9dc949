"""
Value coercion shared by the repositories.

Snowflake hands back values in whatever shape the driver chose: VARIANT as
JSON text or already parsed, timestamps as datetime or ISO text, NUMBER as
Decimal. These helpers turn them into the plain Python values the domain
models use, returning None when a value cannot be read.
"""

import json
import logging
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

logger = logging.getLogger(__name__)


def parse_variant_json(variant_data: Any) -> Any:
    """
    Parse Snowflake VARIANT data that might be a string or already parsed.

    - snowflake-connector-python: Returns VARIANT as JSON string
    - Mock implementation: Returns whatever was written (a JSON string)

    Returns the parsed object, or None if empty or unparsable.
    """
    if variant_data is None or variant_data == "":
        return None

    if isinstance(variant_data, (bytes, bytearray)):
        variant_data = variant_data.decode("utf-8")

    if isinstance(variant_data, str):
        try:
            return json.loads(variant_data)
        except json.JSONDecodeError as e:
            logger.error(
                "Failed to parse VARIANT JSON string",
                extra={"variant_data": variant_data[:100], "error": str(e)}
            )
            return None

    return variant_data


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Unparsable timestamp", extra={"value": value[:40]})
    return None


def parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            logger.warning("Unparsable date", extra={"value": value[:40]})
    return None


def as_count(value: Any, default: int = 0) -> int:
    """Integer count, or default when the value is not a finite number."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, (int, float)) and math.isfinite(value):
        return int(value)
    return default
