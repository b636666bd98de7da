import math
import numbers
import operator
from decimal import Decimal
from typing import Any, Optional

CONDITIONS = {
    "gt": operator.gt,
    "lt": operator.lt,
    "gte": operator.ge,
    "lte": operator.le,
    "equals": operator.eq,
    "neq": operator.ne,
}


def to_number(value: Any) -> Optional[float]:
    """
    Numeric form of a telemetry value or threshold, None when it has none.
    Booleans count as 0/1; None, blank strings and NaN do not coerce.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (numbers.Real, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def evaluate(actual: Any, condition: str, threshold: Any) -> bool:
    """
    Compare ``actual`` against ``threshold``.

    Both sides are compared as numbers when both coerce. Otherwise only
    ``equals``/``neq`` apply, as a string comparison; every other condition
    is False. Unknown conditions are False. Never raises.
    """
    compare = CONDITIONS.get(condition)
    if compare is None:
        return False

    a = to_number(actual)
    t = to_number(threshold)
    if a is None or t is None:
        if condition == "equals":
            return str(actual) == str(threshold)
        if condition == "neq":
            return str(actual) != str(threshold)
        return False
    return compare(a, t)
