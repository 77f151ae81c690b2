"""Condition and condition-group evaluation against an answer set.

Answers are loosely typed (string, list of strings, number, matrix map), so
every comparison goes through one of two explicit coercions:

* ``to_js_string`` for the "stringify and compare" operators
  (equals, not_equals, contains, not_contains);
* ``to_number`` for the numeric operators, where anything that does not
  parse becomes NaN and therefore compares false.

Everything here is pure: same condition and answers, same result.
"""

from __future__ import annotations

import math
import re
from typing import Any, Mapping

from .schema import Condition, ConditionGroup


NAN = float("nan")

# float() also takes "inf", "nan" and "1_000"; answers only count as numbers
# in plain decimal, exponent, "Infinity" or unsigned 0x/0o/0b form
_DECIMAL_LITERAL = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_RADIX_LITERAL = re.compile(r"0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+")


def is_answered(value: Any) -> bool:
    """True iff the value is present and not an empty string/list/map."""
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) > 0
    return True


def to_js_string(value: Any) -> str:
    """Stringify a scalar the way stored definitions compare values.

    Integral floats drop the fractional part (``15.0`` -> ``"15"``) so a
    numeric answer and a string comparison value meet in the middle.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join(to_js_string(v) for v in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def to_number(value: Any) -> float:
    """Coerce an answer to a float; non-numeric input yields NaN."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if _RADIX_LITERAL.fullmatch(text):
            return float(int(text, 0))
        if _DECIMAL_LITERAL.fullmatch(text):
            return float(text)
        return NAN
    return NAN


def _includes(answer: Any, target: Any) -> bool:
    if isinstance(answer, (list, tuple)):
        items = [to_js_string(v) for v in answer]
        if isinstance(target, (list, tuple)):
            return any(to_js_string(t) in items for t in target)
        return to_js_string(target) in items
    text = to_js_string(answer)
    if isinstance(target, (list, tuple)):
        return any(to_js_string(t) in text for t in target)
    return to_js_string(target) in text


def _equals(answer: Any, target: Any) -> bool:
    if isinstance(answer, (list, tuple)):
        # membership: one definition serves single- and multi-select sources
        return to_js_string(target) in [to_js_string(v) for v in answer]
    return to_js_string(answer) == to_js_string(target)


def evaluate_condition(condition: Condition, answers: Mapping[str, Any]) -> bool:
    answer = answers.get(condition.question_id)
    op = condition.operator
    target = condition.value

    if op == "is_answered":
        return is_answered(answer)
    if op == "is_not_answered":
        return not is_answered(answer)

    if op in ("equals", "not_equals"):
        matched = answer is not None and _equals(answer, target)
        return matched if op == "equals" else not matched

    if op in ("contains", "not_contains"):
        matched = answer is not None and _includes(answer, target)
        return matched if op == "contains" else not matched

    left = to_number(answer)
    right = to_number(target)
    if op == "greater_than":
        return left > right
    if op == "less_than":
        return left < right
    if op == "greater_equal":
        return left >= right
    if op == "less_equal":
        return left <= right
    return False


def evaluate_condition_group(group: ConditionGroup, answers: Mapping[str, Any]) -> bool:
    """Combine conditions and nested groups with the group's connector.

    A group with no conditions and no subgroups is true for either connector;
    builders rely on that for catch-all rules.
    """
    results = [evaluate_condition(c, answers) for c in group.conditions]
    results.extend(evaluate_condition_group(g, answers) for g in group.groups)
    if not results:
        return True
    if group.connector == "and":
        return all(results)
    return any(results)
