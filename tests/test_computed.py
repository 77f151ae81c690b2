"""
Tests for computed variables: external call, output mapping and fallbacks.
"""

import json

import httpx
import pytest

from conftest import survey_dict
from survey_engine.computed import (
    ComputedVariableClient,
    merge_computed,
    run_computed_variables,
    triggered_variables,
)
from survey_engine.surveys.conditions import evaluate_condition
from survey_engine.surveys.schema import Condition, Survey


pytestmark = pytest.mark.anyio


def _survey(**cv_overrides):
    cv = {
        "id": "cv1",
        "name": "Classifier",
        "endpoint": "https://classify.example.com/run",
        "trigger": {"type": "on_page_leave", "pageId": "p1"},
        "inputMapping": [
            {"questionId": "age", "paramName": "age"},
            {"questionId": "income", "paramName": "income"},
        ],
        "outputMapping": [
            {"responseKey": "segment", "variableId": "segment", "label": "Segment"},
            {"responseKey": "score", "variableId": "score", "label": "Score"},
        ],
        "fallbackValues": {"segment": "unknown"},
        "timeout": 2000,
        "enabled": True,
    }
    cv.update(cv_overrides)
    return Survey.model_validate(survey_dict(computedVariables=[cv]))


def _client(handler):
    return ComputedVariableClient(transport=httpx.MockTransport(handler))


class TestTriggers:
    def test_only_enabled_variables_for_the_page(self):
        survey = _survey()
        assert [cv.id for cv in triggered_variables(survey, "p1")] == ["cv1"]
        assert triggered_variables(survey, "p2") == []
        assert triggered_variables(_survey(enabled=False), "p1") == []

    async def test_untriggered_page_makes_no_call(self):
        def handler(request):
            raise AssertionError("no call expected")

        assert await run_computed_variables(_survey(), "p2", {}, _client(handler)) == {}


class TestRunComputedVariables:
    async def test_maps_outputs_under_prefixed_keys(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"segment": "premium", "score": 0.5, "extra": "ignored"})

        result = await run_computed_variables(_survey(), "p1", {"age": 41}, _client(handler))

        assert result == {"_cv.segment": "premium", "_cv.score": "0.5"}
        assert seen == [{"age": 41, "income": None}]

    async def test_missing_response_key_becomes_empty_string(self):
        result = await run_computed_variables(
            _survey(), "p1", {}, _client(lambda r: httpx.Response(200, json={"segment": "basic"}))
        )
        assert result == {"_cv.segment": "basic", "_cv.score": ""}

    @pytest.mark.parametrize(
        "handler",
        [
            lambda r: httpx.Response(500),
            lambda r: httpx.Response(200, json=["not", "an", "object"]),
            lambda r: httpx.Response(200, content=b"not json"),
        ],
    )
    async def test_errors_fall_back(self, handler):
        result = await run_computed_variables(_survey(), "p1", {}, _client(handler))
        assert result == {"_cv.segment": "unknown"}

    async def test_timeout_falls_back(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        result = await run_computed_variables(_survey(), "p1", {}, _client(handler))
        assert result == {"_cv.segment": "unknown"}

    async def test_no_fallback_configured(self):
        survey = _survey(fallbackValues=None)
        result = await run_computed_variables(survey, "p1", {}, _client(lambda r: httpx.Response(503)))
        assert result == {}


class TestMerge:
    def test_computed_values_feed_conditions(self):
        answers = merge_computed({"age": 41}, {"_cv.segment": "premium"})
        assert answers == {"age": 41, "_cv.segment": "premium"}
        condition = Condition(question_id="_cv.segment", operator="equals", value="premium")
        assert evaluate_condition(condition, answers)
