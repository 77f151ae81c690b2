from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .config import Settings
from .surveys.conditions import to_js_string
from .surveys.schema import COMPUTED_PREFIX, ComputedVariable, Survey


logger = logging.getLogger(__name__)


class ComputedVariableClient:
    """Calls the external endpoints behind computed variables."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.transport = transport

    async def invoke(self, endpoint: str, body: Dict[str, Any], timeout_ms: int) -> Dict[str, Any]:
        """POST ``body`` as JSON and return the decoded object.

        Raises ``httpx.TimeoutException`` / ``httpx.HTTPStatusError`` on
        timeout or a non-2xx answer, ``ValueError`` on a non-object body.
        """
        async with httpx.AsyncClient(
            timeout=timeout_ms / 1000,
            transport=self.transport,
            follow_redirects=True,
        ) as client:
            resp = await client.post(endpoint, json=body)
            resp.raise_for_status()
            data = resp.json()
            if not isinstance(data, dict):
                raise ValueError("Unexpected computed variable response")
            return data


def triggered_variables(survey: Survey, page_id: str) -> List[ComputedVariable]:
    return [
        cv
        for cv in survey.computed_variables
        if cv.enabled and cv.trigger.type == "on_page_leave" and cv.trigger.page_id == page_id
    ]


def build_inputs(cv: ComputedVariable, answers: Mapping[str, Any]) -> Dict[str, Any]:
    return {m.param_name: answers.get(m.question_id) for m in cv.input_mapping}


def map_outputs(cv: ComputedVariable, data: Mapping[str, Any]) -> Dict[str, str]:
    return {
        m.variable_id: to_js_string(data[m.response_key]) if m.response_key in data else ""
        for m in cv.output_mapping
    }


async def evaluate_computed_variable(
    cv: ComputedVariable,
    answers: Mapping[str, Any],
    client: ComputedVariableClient,
    default_timeout_ms: int = 5000,
) -> Dict[str, str]:
    """Values keyed by variable id; ``fallback_values`` on any failure."""
    timeout_ms = cv.timeout or default_timeout_ms
    try:
        data = await client.invoke(cv.endpoint, build_inputs(cv, answers), timeout_ms)
    except httpx.TimeoutException:
        logger.warning("[ComputedVariable] %s: timed out after %d ms", cv.name or cv.id, timeout_ms)
        return dict(cv.fallback_values or {})
    except httpx.HTTPStatusError as e:
        logger.warning("[ComputedVariable] %s: HTTP %s", cv.name or cv.id, e.response.status_code)
        return dict(cv.fallback_values or {})
    except Exception as e:  # noqa: BLE001
        logger.warning("[ComputedVariable] %s: call failed: %r", cv.name or cv.id, e)
        return dict(cv.fallback_values or {})
    return map_outputs(cv, data)


async def run_computed_variables(
    survey: Survey,
    page_id: str,
    answers: Mapping[str, Any],
    client: Optional[ComputedVariableClient] = None,
) -> Dict[str, str]:
    """Evaluate every variable triggered by leaving ``page_id``.

    Result keys carry the ``_cv.`` prefix so they can be merged straight into
    the answer set and referenced by conditions and quotas.
    """
    triggered = triggered_variables(survey, page_id)
    if not triggered:
        return {}
    client = client or ComputedVariableClient()
    default_timeout = Settings().computed_default_timeout_ms
    outcomes = await asyncio.gather(
        *(evaluate_computed_variable(cv, answers, client, default_timeout) for cv in triggered)
    )
    results: Dict[str, str] = {}
    for values in outcomes:
        for variable_id, value in values.items():
            results[f"{COMPUTED_PREFIX}{variable_id}"] = value
    return results


def merge_computed(answers: Mapping[str, Any], variables: Mapping[str, str]) -> Dict[str, Any]:
    merged = dict(answers)
    merged.update(variables)
    return merged
