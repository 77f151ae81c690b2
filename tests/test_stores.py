"""
Tests for the SQL counter and response stores (in-memory SQLite).
"""

import json

from sqlmodel import Session, select

from survey_engine.db import get_session
from survey_engine.models import QuotaCounter, SurveyResponse
from survey_engine.surveys.schema import Respondent, ResponseMetadata


class TestSqlCounterStore:
    def test_missing_counter_reads_zero(self, counters):
        assert counters.get("s1", "q1") == 0
        assert counters.snapshot("s1") == {}

    def test_first_increment_creates_counter(self, counters):
        counters.increment("s1", "q1")
        assert counters.get("s1", "q1") == 1

    def test_increments_accumulate_per_pair(self, counters):
        for _ in range(3):
            counters.increment("s1", "q1")
        counters.increment("s1", "q2")
        counters.increment("s2", "q1")

        assert counters.snapshot("s1") == {"q1": 3, "q2": 1}
        assert counters.snapshot("s2") == {"q1": 1}


class TestSqlResponseStore:
    def _save(self, responses, status="completed", uid="u1"):
        return responses.save(
            "s1",
            status,
            Respondent(uid=uid, params={"pid": uid or "", "src": "mail"}),
            {"q1": "yes", "q2": ["a"]},
            ResponseMetadata(completed_at="2024-05-01T10:00:00Z", duration=12.5, page_history=["p1", "p2"]),
        )

    def test_save_persists_all_fields(self, responses, db_engine):
        row = self._save(responses)
        assert row.id is not None

        with Session(db_engine) as session:
            stored = session.exec(select(SurveyResponse).where(SurveyResponse.id == row.id)).one()
        assert stored.status == "completed"
        assert stored.respondent_uid == "u1"
        assert json.loads(stored.data_json) == {"q1": "yes", "q2": ["a"]}
        assert json.loads(stored.respondent_params_json) == {"pid": "u1", "src": "mail"}
        assert json.loads(stored.page_history_json) == ["p1", "p2"]
        assert stored.duration == 12.5
        assert stored.completed_at.year == 2024

    def test_duplicate_lookup_only_counts_completed(self, responses):
        self._save(responses, status="disqualified", uid="u1")
        assert not responses.exists_completed("s1", "u1")

        self._save(responses, status="completed", uid="u1")
        assert responses.exists_completed("s1", "u1")
        assert not responses.exists_completed("s1", "u2")
        assert not responses.exists_completed("other", "u1")

    def test_bad_completed_at_uses_server_time(self, responses):
        row = responses.save("s1", "completed", Respondent(), {}, ResponseMetadata(completed_at="yesterday"))
        assert row.completed_at is not None


class TestGetSession:
    def test_session_is_bound_to_the_given_engine(self, db_engine, counters):
        counters.increment("s1", "q1")
        with get_session(db_engine) as session:
            assert session.get_bind() is db_engine
            rows = session.exec(select(QuotaCounter)).all()
        assert [(r.quota_id, r.count) for r in rows] == [("q1", 1)]
