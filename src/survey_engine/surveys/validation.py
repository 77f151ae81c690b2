from __future__ import annotations

import logging
import math
import re
from typing import Any, List, Mapping, Optional, Sequence

from .conditions import is_answered, to_number
from .schema import CamelModel, MATRIX_TYPES, Question, ValidationRule


logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "This question is required."
PATTERN_MESSAGE = "The answer is not in the expected format."
NUMERIC_MESSAGE = "Please enter a numeric value."
RANKING_MESSAGE = "Please rank all items."


class ValidationError(CamelModel):
    question_id: str
    message: str


def _is_blank_matrix(answer: Any) -> bool:
    return isinstance(answer, dict) and all(v == "" for v in answer.values())


def _matches_pattern(pattern: str, text: str) -> bool:
    try:
        return re.search(pattern, text) is not None
    except re.error:
        # a half-edited pattern must not lock respondents out
        logger.warning("Ignoring invalid validation pattern %r", pattern)
        return True


def validate_question(question: Question, answer: Any) -> Optional[str]:
    """Return the first error message for ``answer``, or None when it is valid."""
    rules = question.validation or ValidationRule()

    if question.required and (not is_answered(answer) or _is_blank_matrix(answer)):
        return REQUIRED_MESSAGE
    if not is_answered(answer):
        return None

    if question.type == "multiple_choice":
        count = len(answer) if isinstance(answer, list) else 0
        if rules.min_select and count < rules.min_select:
            return f"Please select at least {rules.min_select} options."
        if rules.max_select and count > rules.max_select:
            return f"Please select no more than {rules.max_select} options."

    elif question.type == "open_text":
        text = str(answer)
        if rules.min_length and len(text) < rules.min_length:
            return f"Please enter at least {rules.min_length} characters."
        if rules.max_length and len(text) > rules.max_length:
            return f"Please enter no more than {rules.max_length} characters."
        if rules.pattern and not _matches_pattern(rules.pattern, text):
            return rules.pattern_message or PATTERN_MESSAGE

    elif question.type == "number_input":
        number = to_number(answer)
        if not math.isfinite(number):
            return NUMERIC_MESSAGE
        if rules.min_value is not None and number < rules.min_value:
            return f"Please enter a value of at least {rules.min_value:g}."
        if rules.max_value is not None and number > rules.max_value:
            return f"Please enter a value of at most {rules.max_value:g}."

    elif question.type in MATRIX_TYPES:
        if question.required and question.matrix_rows:
            cells = answer if isinstance(answer, dict) else {}
            for row in question.matrix_rows:
                if not is_answered(cells.get(row.id)):
                    return f'Please answer "{row.text}".'

    elif question.type == "ranking":
        if question.required and question.choices:
            ranked = answer if isinstance(answer, list) else []
            if len(ranked) != len(question.choices):
                return RANKING_MESSAGE

    return None


def validate_page(questions: Sequence[Question], answers: Mapping[str, Any]) -> List[ValidationError]:
    """Validate every (visible, carry-forward-resolved) question in page order."""
    errors: List[ValidationError] = []
    for question in questions:
        message = validate_question(question, answers.get(question.id))
        if message:
            errors.append(ValidationError(question_id=question.id, message=message))
    return errors
