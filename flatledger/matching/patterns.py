"""
Pattern Matching Primitives

Leaf-level helpers shared by the flatmate matcher and the expense
categorizer:
1. `matches` - test one user-authored pattern against one field
2. `normalize_payload` - flatten the source payload into typed fields
3. `build_search_corpus` - the lowercase text the person matcher searches

IMPORTANT: Nothing in here raises on bad input. A typo in an
admin-entered regex or a garbled payload must degrade matching for one
transaction, never halt reconciliation for the batch.
"""

import json
import re
from typing import Any, Optional, Union

from flatledger.models.transaction import SupplementaryFields


# Payload fields lifted into SupplementaryFields, in corpus order
SUPPLEMENTARY_FIELDS = ("particulars", "code", "reference", "other_account")


def matches(pattern: Optional[str], value: Optional[str], is_regex: bool = False) -> bool:
    """
    Test whether `pattern` matches `value`, ignoring case.

    Args:
        pattern: Substring, or regular expression when `is_regex` is set
        value: Field value to test
        is_regex: Compile `pattern` as a regex; an invalid regex falls back
            to substring containment

    Returns:
        True on a match. Absent pattern or value never matches.

    Example:
        >>> matches("mercury", "MERCURY ENERGY")
        True
        >>> matches("count(down", "Countdown", is_regex=True)
        False
    """
    if not pattern or not value:
        return False

    if is_regex:
        try:
            return re.search(pattern, value, re.IGNORECASE) is not None
        except re.error:
            pass

    return pattern.lower() in value.lower()


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def normalize_payload(raw: Union[dict, str, bytes, None]) -> SupplementaryFields:
    """
    Extract the supplementary matching fields from a source payload.

    Values under a nested "meta" object win over top-level ones.
    Anything unparseable yields an empty record.

    Args:
        raw: The source record as a dict or a JSON document

    Returns:
        SupplementaryFields with whatever could be read
    """
    payload: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            payload = json.loads(raw)
        except (ValueError, TypeError):
            return SupplementaryFields()

    if not isinstance(payload, dict):
        return SupplementaryFields()

    meta = payload.get("meta")
    if not isinstance(meta, dict):
        meta = {}

    fields = {}
    for name in SUPPLEMENTARY_FIELDS + ("card_suffix",):
        nested = _as_text(meta.get(name))
        fields[name] = nested if nested is not None else _as_text(payload.get(name))

    return SupplementaryFields(**fields)


def build_search_corpus(description: Optional[str], supplementary: SupplementaryFields) -> str:
    """
    Join the description and the supplementary text fields, lowercased.

    This is what bank-account and name patterns are searched in.
    """
    parts = [description] + [getattr(supplementary, name) for name in SUPPLEMENTARY_FIELDS]
    return " ".join(part for part in parts if part).lower()
