from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
from sqlmodel import SQLModel

from survey_engine.db import create_db_engine
from survey_engine.stores import SqlCounterStore, SqlResponseStore
from survey_engine.surveys.schema import Choice, Condition, ConditionGroup, Question


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def db_engine():
    from survey_engine import models  # noqa: F401

    engine = create_db_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def counters(db_engine) -> SqlCounterStore:
    return SqlCounterStore(db_engine)


@pytest.fixture
def responses(db_engine) -> SqlResponseStore:
    return SqlResponseStore(db_engine)


def cond(question_id: str, operator: str, value: Any = None) -> Condition:
    return Condition(question_id=question_id, operator=operator, value=value)


def group(connector: str = "and", conditions: Optional[List[Condition]] = None, groups=None) -> ConditionGroup:
    return ConditionGroup(connector=connector, conditions=conditions or [], groups=groups or [])


def choices(*values: str) -> List[Choice]:
    return [Choice(id=f"c-{v}", text=v.title(), value=v) for v in values]


def question(qid: str, qtype: str, **kwargs: Any) -> Question:
    return Question(id=qid, type=qtype, text=f"Question {qid}", **kwargs)


def survey_dict(**overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": "s1",
        "title": "Test survey",
        "status": "published",
        "structure": {"pages": [{"id": "p1", "questions": [{"id": "q1", "type": "open_text"}]}]},
    }
    data.update(overrides)
    return data
