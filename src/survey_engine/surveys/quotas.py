"""Quota matching against an answer set and a caller-supplied counter snapshot.

Counters are not touched here. The submission flow reads a snapshot, asks
``find_exceeded_quotas`` whether the response may be admitted, and then
increments every id from ``get_matching_quota_ids`` once.
"""

from __future__ import annotations

import math
from typing import Any, List, Mapping, Sequence

from .conditions import to_js_string, to_number
from .schema import Quota, QuotaCondition


def evaluate_quota_condition(condition: QuotaCondition, answers: Mapping[str, Any]) -> bool:
    answer = answers.get(condition.question_id)
    if answer is None:
        return False

    if condition.condition_type == "numeric":
        number = to_number(answer)
        if math.isnan(number):
            return False
        target = condition.value if condition.value is not None else 0
        op = condition.operator
        if op == "equals":
            return number == target
        if op == "not_equals":
            return number != target
        if op == "greater_than":
            return number > target
        if op == "less_than":
            return number < target
        if op == "greater_equal":
            return number >= target
        if op == "less_equal":
            return number <= target
        return False

    wanted = condition.selected_values or []
    if not wanted:
        return False
    if isinstance(answer, (list, tuple)):
        given = {to_js_string(v) for v in answer}
        return any(v in given for v in wanted)
    return to_js_string(answer) in wanted


def matches_quota(quota: Quota, answers: Mapping[str, Any]) -> bool:
    if not quota.enabled:
        return False
    return all(evaluate_quota_condition(c, answers) for c in quota.conditions)


def find_exceeded_quotas(
    quotas: Sequence[Quota],
    answers: Mapping[str, Any],
    counters: Mapping[str, int],
) -> List[Quota]:
    """Enabled, matching quotas whose count already reached the limit.

    Declaration order is kept; the first entry decides what happens to the
    submission.
    """
    return [
        q
        for q in quotas
        if matches_quota(q, answers) and counters.get(q.id, 0) >= q.limit
    ]


def get_matching_quota_ids(quotas: Sequence[Quota], answers: Mapping[str, Any]) -> List[str]:
    return [q.id for q in quotas if matches_quota(q, answers)]
