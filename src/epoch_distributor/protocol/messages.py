"""
epoch_distributor/protocol/messages.py

Decoding of external HTTP/JSON payloads (price API, fee-claim API).

Every response is turned into exactly one of:
    Parsed(fields)          - the required fields are present and typed
    Malformed(raw, reason)  - anything else, with the raw payload kept

Callers match on the variant and never read a field they did not validate.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union

import requests

# How much of a raw payload to keep on Malformed for logging
RAW_PREVIEW_LIMIT = 500


@dataclass(frozen=True)
class Parsed:
    """A validated payload."""
    fields: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]


@dataclass(frozen=True)
class Malformed:
    """A payload that failed validation."""
    raw: Any
    reason: str

    def preview(self) -> str:
        text = self.raw if isinstance(self.raw, str) else repr(self.raw)
        return text[:RAW_PREVIEW_LIMIT]


ParseResult = Union[Parsed, Malformed]


def decode_json_body(response: requests.Response) -> ParseResult:
    """
    Decode a JSON object body. Floats are read as Decimal.

    Returns:
        Parsed({"body": dict}) or Malformed(raw_text, reason)
    """
    try:
        body = json.loads(response.text, parse_float=Decimal)
    except ValueError:
        return Malformed(raw=response.text, reason="body is not JSON")
    if not isinstance(body, dict):
        return Malformed(raw=body, reason="body is not a JSON object")
    return Parsed({"body": body})


def as_decimal(value: Any) -> Optional[Decimal]:
    """
    Read a numeric JSON value (number or numeric string) as Decimal.

    Booleans, NaN and infinities are rejected.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def require_str(body: Dict[str, Any], key: str) -> ParseResult:
    """Require a non-empty string field."""
    value = body.get(key)
    if not isinstance(value, str) or not value:
        return Malformed(raw=body, reason=f"missing or empty `{key}` field")
    return Parsed({key: value})
