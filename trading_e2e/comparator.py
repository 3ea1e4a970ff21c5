"""
Structural, pattern-aware comparison of expected templates against received values.

A template is a partial projection of the value it describes: every key present
in a template object must match the corresponding key of the actual object,
keys present only in the actual object are ignored. Strings in a template may be
wildcard tokens that act as predicates instead of literals:

- ``${id}``                   XXXX-XXXX-XXXX, X in [0-9A-Z]
- ``${timestamp}``            digits only
- ``${uuid}``                 canonical 8-4-4-4-12 hex UUID
- ``${address}``              34 or more alphanumerics (wallet address)
- ``${or:a:b:c}``             one of the colon separated alternatives
- ``${float:target:tol}``     a number within ``tol`` of ``target``
- ``${string}``               any string

Entry points:
- compare() - boolean check, never raises
- equals() - hard assertion with the path of the first mismatch
- contains() / does_not_contain() - membership assertions over lists
"""

import difflib
import json
import logging
import re
from collections.abc import Mapping
from typing import Any, List, Optional, Tuple

from .errors import ComparisonFailure

logger = logging.getLogger(__name__)

ID_PATTERN = re.compile(r"[0-9A-Z]{4}-[0-9A-Z]{4}-[0-9A-Z]{4}")
TIMESTAMP_PATTERN = re.compile(r"\d+")
UUID_PATTERN = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")
ADDRESS_PATTERN = re.compile(r"[A-Za-z0-9]{34,}")

ID_TOKEN = "${id}"
TIMESTAMP_TOKEN = "${timestamp}"
UUID_TOKEN = "${uuid}"
ADDRESS_TOKEN = "${address}"
STRING_TOKEN = "${string}"
OR_PREFIX = "${or:"
FLOAT_PREFIX = "${float:"

# (path, expected, actual) of the first mismatch
Mismatch = Tuple[str, Any, Any]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _loose_equal(expected: Any, actual: Any) -> bool:
    """Equality that tolerates numbers encoded as strings on either side."""
    if expected == actual:
        return True
    try:
        if isinstance(expected, str) and _is_number(actual):
            return float(expected) == actual
        if _is_number(expected) and isinstance(actual, str):
            return float(actual) == expected
    except ValueError:
        return False
    return False


def _token_arguments(token: str, prefix: str) -> List[str]:
    return token[len(prefix):-1].split(":")


def _match_string(expected: str, actual: Any) -> bool:
    """Match a template string, resolving wildcard tokens in priority order."""
    if expected == ID_TOKEN:
        return isinstance(actual, str) and ID_PATTERN.fullmatch(actual) is not None
    if expected == TIMESTAMP_TOKEN:
        if isinstance(actual, bool):
            return False
        return TIMESTAMP_PATTERN.fullmatch(str(actual)) is not None
    if expected == UUID_TOKEN:
        return isinstance(actual, str) and UUID_PATTERN.fullmatch(actual) is not None
    if expected == ADDRESS_TOKEN:
        return isinstance(actual, str) and ADDRESS_PATTERN.fullmatch(actual) is not None
    if expected.startswith(OR_PREFIX) and expected.endswith("}"):
        alternatives = _token_arguments(expected, OR_PREFIX)
        return any(_loose_equal(alternative, actual) for alternative in alternatives)
    if expected.startswith(FLOAT_PREFIX) and expected.endswith("}"):
        target, tolerance = _token_arguments(expected, FLOAT_PREFIX)
        if actual is None or isinstance(actual, bool):
            return False
        return abs(float(actual) - float(target)) <= float(tolerance)
    if expected == STRING_TOKEN:
        return isinstance(actual, str)
    return _loose_equal(expected, actual)


def _first_mismatch(expected: Any, actual: Any, path: str = "$") -> Optional[Mismatch]:
    """Walk the template and return the first mismatch, or None when it matches."""
    if expected is None:
        return None if actual is None else (path, expected, actual)

    if isinstance(expected, bool) or _is_number(expected):
        return None if _loose_equal(expected, actual) else (path, expected, actual)

    if isinstance(expected, str):
        return None if _match_string(expected, actual) else (path, expected, actual)

    if isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)):
            return (path, expected, actual)
        for index, item in enumerate(expected):
            item_path = f"{path}[{index}]"
            if index >= len(actual):
                return (item_path, item, None)
            mismatch = _first_mismatch(item, actual[index], item_path)
            if mismatch:
                return mismatch
        return None

    if isinstance(expected, Mapping):
        for key, value in expected.items():
            key_path = f"{path}.{key}"
            if not isinstance(actual, Mapping):
                return (key_path, value, None)
            mismatch = _first_mismatch(value, actual.get(key), key_path)
            if mismatch:
                return mismatch
        return None

    return None if expected == actual else (path, expected, actual)


def compare(expected: Any, actual: Any) -> bool:
    """
    Check whether ``actual`` satisfies the ``expected`` template.

    Never raises: malformed tokens or values of an unexpected shape read as a
    mismatch.
    """
    try:
        return _first_mismatch(expected, actual) is None
    except Exception as e:
        logger.debug(f"compare() folded error to mismatch: {e!r}")
        return False


def describe_mismatch(expected: Any, actual: Any) -> Optional[str]:
    """Human-readable description of the first mismatch, or None on a match."""
    try:
        mismatch = _first_mismatch(expected, actual)
    except Exception as e:
        return f"$: comparison error {e!r}"
    if mismatch is None:
        return None
    path, want, got = mismatch
    return f"{path}: expected {want!r}, got {got!r}"


def equals(expected: Any, actual: Any) -> bool:
    """
    Assert that ``actual`` satisfies ``expected``.

    Raises:
        ComparisonFailure: naming the path of the first mismatching field
    """
    logger.debug(f"equals: EXPECTED={_dumps(expected)}")
    logger.debug(f"equals:   ACTUAL={_dumps(actual)}")
    try:
        mismatch = _first_mismatch(expected, actual)
    except Exception as e:
        raise ComparisonFailure(f"comparison error: {e!r}", "$", expected, actual) from e
    if mismatch is not None:
        path, want, got = mismatch
        raise ComparisonFailure(f"{path}: expected {want!r}, got {got!r}", path, want, got)
    return True


def _find(template: Any, candidates: List[Any]) -> Optional[int]:
    for index, candidate in enumerate(candidates):
        if compare(template, candidate):
            return index
    return None


def contains(expected: List[Any], actual: List[Any]) -> None:
    """Assert every template in ``expected`` matches some element of ``actual``."""
    for index, template in enumerate(expected):
        if _find(template, actual) is None:
            raise ComparisonFailure(
                f"expected[{index}] not found: {_dumps(template)}",
                f"$[{index}]", template, None
            )


def does_not_contain(expected: List[Any], actual: List[Any]) -> None:
    """Assert no template in ``expected`` matches any element of ``actual``."""
    for index, template in enumerate(expected):
        position = _find(template, actual)
        if position is not None:
            raise ComparisonFailure(
                f"expected[{index}] unexpectedly matched actual[{position}]: {_dumps(actual[position])}",
                f"$[{index}]", template, actual[position]
            )


def _dumps(value: Any, indent: Optional[int] = None) -> str:
    return json.dumps(value, indent=indent, sort_keys=True, default=str)


def diff(expected: Any, actual: Any) -> str:
    """Unified diff between the JSON renderings of a template and a value."""
    lines = difflib.unified_diff(
        _dumps(expected, indent=2).splitlines(),
        _dumps(actual, indent=2).splitlines(),
        fromfile="expected",
        tofile="actual",
        lineterm="",
    )
    return "\n".join(lines)


def closest_candidates(template: Any, events: List[Any], limit: int = 3) -> List[str]:
    """Diffs against received events sharing the template's ``type``."""
    if not isinstance(template, Mapping) or "type" not in template:
        return []
    diffs = []
    for event in events:
        if isinstance(event, Mapping) and event.get("type") == template["type"]:
            diffs.append(diff(template, event))
            if len(diffs) >= limit:
                break
    return diffs
