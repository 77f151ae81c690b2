from __future__ import annotations

from typing import Any, List, Mapping, Sequence

from .conditions import to_js_string
from .schema import CHOICE_TYPES, MATRIX_TYPES, MatrixRow, Question


def selected_values(source: Question, answers: Mapping[str, Any]) -> List[str]:
    """Values the respondent picked on the source question."""
    answer = answers.get(source.id)
    if not answer:
        return []
    if isinstance(answer, (list, tuple)):
        return [to_js_string(v) for v in answer]
    if isinstance(answer, str):
        # older clients posted multi-select answers as "a,b,c"
        if source.type in CHOICE_TYPES:
            return [v for v in answer.split(",") if v]
        return [answer]
    return []


def resolve_carry_forward(
    question: Question,
    all_questions: Sequence[Question],
    answers: Mapping[str, Any],
) -> Question:
    """Return a copy of ``question`` with options derived from its source.

    Choice targets get their ``choices`` replaced; matrix targets get one row
    per carried choice (row id is the choice value) and keep their own
    columns. A missing source leaves the question as authored.
    """
    cf = question.carry_forward
    if cf is None:
        return question

    source = next((q for q in all_questions if q.id == cf.question_id), None)
    if source is None:
        return question

    picked = selected_values(source, answers)
    source_choices = source.choices or []
    if cf.mode == "selected":
        carried = [c for c in source_choices if c.value in picked]
    else:
        carried = [c for c in source_choices if c.value not in picked]

    if question.type in MATRIX_TYPES:
        rows = [MatrixRow(id=c.value, text=c.text) for c in carried]
        return question.model_copy(update={"matrix_rows": rows})

    if question.type in CHOICE_TYPES:
        choices = [c.model_copy() for c in carried]
        return question.model_copy(update={"choices": choices})

    return question
