"""
Tests for per-question and per-page answer validation.
"""

import pytest

from conftest import choices, question
from survey_engine.surveys.schema import MatrixRow, ValidationRule
from survey_engine.surveys.validation import (
    NUMERIC_MESSAGE,
    PATTERN_MESSAGE,
    RANKING_MESSAGE,
    REQUIRED_MESSAGE,
    validate_page,
    validate_question,
)


class TestRequired:
    @pytest.mark.parametrize("answer", [None, "", [], {}, {"r1": "", "r2": ""}])
    def test_missing_answers_fail_when_required(self, answer):
        q = question("q", "open_text", required=True)
        assert validate_question(q, answer) == REQUIRED_MESSAGE

    @pytest.mark.parametrize("answer", [None, "", []])
    def test_missing_answers_pass_when_optional(self, answer):
        """Absent and optional short-circuits before type checks."""
        q = question("q", "multiple_choice", validation=ValidationRule(min_select=2))
        assert validate_question(q, answer) is None

    def test_required_precedes_type_checks(self):
        q = question("n", "number_input", required=True, validation=ValidationRule(min_value=5))
        assert validate_question(q, None) == REQUIRED_MESSAGE


class TestNumberInput:
    q = question("n", "number_input", validation=ValidationRule(min_value=0, max_value=100))

    def test_above_maximum(self):
        assert validate_question(self.q, 150) is not None

    def test_within_bounds(self):
        assert validate_question(self.q, 50) is None
        assert validate_question(self.q, "50") is None

    def test_not_numeric(self):
        assert validate_question(self.q, "abc") == NUMERIC_MESSAGE

    def test_not_finite(self):
        assert validate_question(self.q, "inf") == NUMERIC_MESSAGE

    def test_zero_minimum_is_enforced(self):
        assert validate_question(self.q, -1) is not None
        assert validate_question(self.q, 0) is None


class TestMultipleChoice:
    q = question("m", "multiple_choice", choices=choices("a", "b", "c", "d"), validation=ValidationRule(min_select=2, max_select=3))

    @pytest.mark.parametrize(
        "answer, ok",
        [(["a"], False), (["a", "b"], True), (["a", "b", "c"], True), (["a", "b", "c", "d"], False)],
    )
    def test_selection_bounds(self, answer, ok):
        assert (validate_question(self.q, answer) is None) is ok


class TestOpenText:
    def test_length_bounds(self):
        q = question("t", "open_text", validation=ValidationRule(min_length=3, max_length=5))
        assert validate_question(q, "ab") is not None
        assert validate_question(q, "abcd") is None
        assert validate_question(q, "abcdef") is not None

    def test_pattern_with_custom_message(self):
        q = question("zip", "open_text", validation=ValidationRule(pattern=r"^\d{3}-\d{4}$", pattern_message="Use 123-4567"))
        assert validate_question(q, "123-4567") is None
        assert validate_question(q, "1234567") == "Use 123-4567"

    def test_pattern_default_message(self):
        q = question("code", "open_text", validation=ValidationRule(pattern=r"^[A-Z]+$"))
        assert validate_question(q, "abc") == PATTERN_MESSAGE

    def test_pattern_is_a_search(self):
        """Unanchored patterns match anywhere, like a JavaScript RegExp test."""
        q = question("t", "open_text", validation=ValidationRule(pattern=r"\d"))
        assert validate_question(q, "room 5") is None

    def test_invalid_pattern_is_ignored(self):
        q = question("t", "open_text", validation=ValidationRule(pattern="([unclosed"))
        assert validate_question(q, "anything") is None


class TestMatrix:
    rows = [MatrixRow(id="r1", text="Taste"), MatrixRow(id="r2", text="Price")]

    def test_every_row_needs_an_answer(self):
        q = question("mx", "matrix_single", required=True, matrix_rows=self.rows)
        assert validate_question(q, {"r1": "3", "r2": "1"}) is None
        assert validate_question(q, {"r1": "3"}) == 'Please answer "Price".'
        assert validate_question(q, {"r1": "3", "r2": ""}) == 'Please answer "Price".'

    def test_matrix_multiple_empty_cell(self):
        q = question("mx", "matrix_multiple", required=True, matrix_rows=self.rows)
        assert validate_question(q, {"r1": ["a"], "r2": []}) == 'Please answer "Price".'

    def test_optional_matrix_allows_partial(self):
        q = question("mx", "matrix_single", matrix_rows=self.rows)
        assert validate_question(q, {"r1": "3"}) is None


class TestRanking:
    def test_required_ranking_needs_every_item(self):
        q = question("rk", "ranking", required=True, choices=choices("a", "b", "c"))
        assert validate_question(q, ["b", "a"]) == RANKING_MESSAGE
        assert validate_question(q, ["b", "a", "c"]) is None

    def test_optional_ranking_may_be_partial(self):
        q = question("rk", "ranking", choices=choices("a", "b", "c"))
        assert validate_question(q, ["b"]) is None


class TestValidatePage:
    def test_collects_errors_in_page_order(self):
        questions = [
            question("first", "open_text", required=True),
            question("second", "number_input"),
            question("third", "open_text", required=True),
        ]
        answers = {"second": "abc", "third": "fine"}
        errors = validate_page(questions, answers)

        assert [(e.question_id, e.message) for e in errors] == [
            ("first", REQUIRED_MESSAGE),
            ("second", NUMERIC_MESSAGE),
        ]
        assert errors[0].to_json_dict() == {"questionId": "first", "message": REQUIRED_MESSAGE}
        assert answers == {"second": "abc", "third": "fine"}

    def test_valid_page(self):
        assert validate_page([question("q", "open_text", required=True)], {"q": "ok"}) == []
