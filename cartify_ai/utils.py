import json
import math
import re
from typing import Any, Dict, Optional

WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Purpose: Collapse runs of whitespace into single spaces and trim the ends.
    Inputs/Outputs: Input is a raw string; output is the cleaned string.
    Side Effects / State: None; pure function.
    Dependencies: Uses regex; called by HTML scraping and evidence formatting.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Scraped titles and snippets keep layout whitespace from the page.
    Testing Notes: Feed tabs/newlines and verify a single-spaced result.
    """
    # Normalize whitespace so scraped markup renders on one line.
    if not text:
        return ""
    return WHITESPACE_RE.sub(" ", text).strip()


def truncate_text(text: str, max_chars: int) -> str:
    """Purpose: Hard-cap an evidence string to a character budget.
    Inputs/Outputs: Input is text and a cap; output is text of at most max_chars.
    Side Effects / State: None; pure function.
    Dependencies: Used by web and catalog evidence formatting.
    Failure Modes: Non-positive caps return an empty string.
    If Removed: Oversized evidence blocks could exceed the model budget.
    Testing Notes: Verify strings under the cap are unchanged.
    """
    # Silently drop the overflow; callers never fail on oversized evidence.
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars]


def is_record(value: Any) -> bool:
    return isinstance(value, dict)


def coerce_float(value: Any) -> Optional[float]:
    """Purpose: Convert a loosely-typed row value into a finite float.
    Inputs/Outputs: Input is any value; output is a float or None when absent/invalid.
    Side Effects / State: None.
    Dependencies: Used by typed record parsing for prices, ratings, and discounts.
    Failure Modes: Booleans, NaN, infinities, and unparsable strings return None.
    If Removed: Record parsing would crash on numeric strings or nulls from the store.
    Testing Notes: Check "12.5", 3, None, "abc", and float("nan").
    """
    # Treat booleans as absent since PostgREST never sends them for numeric columns.
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def coerce_int(value: Any) -> Optional[int]:
    number = coerce_float(value)
    if number is None:
        return None
    return int(number)


def coerce_bool(value: Any) -> Optional[bool]:
    """Purpose: Read a boolean column that may arrive as bool, number, or string.
    Inputs/Outputs: Input is any value; output is True/False or None when absent.
    Side Effects / State: None.
    Dependencies: Used by variant availability parsing.
    Failure Modes: Unknown strings return None.
    If Removed: String-typed availability flags would be treated as truthy.
    Testing Notes: Check "false", 0, True, None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "t", "1", "yes"}:
            return True
        if lowered in {"false", "f", "0", "no"}:
            return False
    return None


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def format_number(value: float) -> str:
    # 20.0 -> "20", 12.5 -> "12.5"
    return f"{value:g}"


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Parse a JSON object from text without raising.
    Inputs/Outputs: Input is raw text; output is a dict or None if parsing fails.
    Side Effects / State: None; pure function.
    Dependencies: Uses json.loads; called by credential decoding and provider bodies.
    Failure Modes: Returns None on JSONDecodeError or when the top level is not an object.
    If Removed: Malformed claims or bodies would raise deep inside the pipeline.
    Testing Notes: Validate an object parses and arrays/garbage return None.
    """
    # Accept only JSON objects; arrays and scalars are treated as malformed.
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    return data
