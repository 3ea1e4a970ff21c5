"""Small helpers shared by test suites."""

import asyncio
import copy
import inspect
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Sequence, Union

# 2022-10-28T00:04:45Z in ms; keeps unique ids short
_EPOCH_MS = 1666915485438


def unique_id(prefix: str = "") -> str:
    """Short, probably-unique id: prefix + seconds-since-epoch mod 1000 + random 0-99."""
    seconds = (time.time() * 1000 - _EPOCH_MS) / 1000
    return f"{prefix}{int(seconds % 1000)}{random.randint(0, 99)}"


async def retry(
    func: Callable[[], Union[bool, Awaitable[bool]]],
    attempts: int = 10,
    delay: float = 3.0,
) -> bool:
    """
    Call ``func`` until it returns a truthy value.

    Args:
        func: sync or async predicate
        attempts: maximum number of calls
        delay: seconds to sleep between calls

    Returns:
        True on the first truthy result, False after ``attempts`` misses
    """
    for attempt in range(attempts):
        result = func()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return True
        if attempt < attempts - 1:
            await asyncio.sleep(delay)
    return False


def expand(inputs: Sequence[Mapping[str, Any]], key: str, values: Sequence[Any]) -> List[Dict[str, Any]]:
    """Every input combined with every value of ``key``."""
    result = []
    for item in inputs:
        for value in values:
            combined = copy.deepcopy(dict(item))
            combined[key] = value
            result.append(combined)
    return result


def variants(schema: Mapping[str, Sequence[Any]]) -> List[Dict[str, Any]]:
    """
    Cartesian expansion of a parameter grid.

    variants({"side": ["BUY", "SELL"], "qty": [1, 2]}) yields four dicts, the
    last key varying fastest.
    """
    result: List[Dict[str, Any]] = [{}]
    for key, values in schema.items():
        result = expand(result, key, values)
    return result
