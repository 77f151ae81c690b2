"""SQL-backed implementations of the engine's persistence collaborators.

The engine itself only sees the ``CounterStore`` / ``ResponseStore``
protocols; these classes are the default behind them.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Protocol

from sqlalchemy import insert, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .db import engine as default_engine, get_session
from .models import QuotaCounter, SurveyResponse
from .surveys.schema import Respondent, ResponseMetadata


logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    def get(self, survey_id: str, quota_id: str) -> int: ...

    def snapshot(self, survey_id: str) -> Dict[str, int]: ...

    def increment(self, survey_id: str, quota_id: str) -> None: ...


class ResponseStore(Protocol):
    def save(
        self,
        survey_id: str,
        status: str,
        respondent: Respondent,
        data: Mapping[str, Any],
        metadata: ResponseMetadata,
    ) -> SurveyResponse: ...

    def exists_completed(self, survey_id: str, respondent_uid: str) -> bool: ...


class SqlCounterStore:
    def __init__(self, bind: Optional[Engine] = None) -> None:
        self.engine = bind or default_engine

    def get(self, survey_id: str, quota_id: str) -> int:
        with get_session(self.engine) as session:
            count = session.exec(
                select(QuotaCounter.count).where(
                    (QuotaCounter.survey_id == survey_id) & (QuotaCounter.quota_id == quota_id)
                )
            ).first()
        return count or 0

    def snapshot(self, survey_id: str) -> Dict[str, int]:
        with get_session(self.engine) as session:
            rows = session.exec(select(QuotaCounter).where(QuotaCounter.survey_id == survey_id)).all()
        return {row.quota_id: row.count for row in rows}

    def increment(self, survey_id: str, quota_id: str) -> None:
        """Atomically add 1 to the counter, creating it at 1 on first use.

        Each step is a single statement, so concurrent submissions never lose
        an increment; a lost race on the insert falls back to the update.
        """
        bump = (
            update(QuotaCounter)
            .where((QuotaCounter.survey_id == survey_id) & (QuotaCounter.quota_id == quota_id))
            .values(count=QuotaCounter.count + 1)
        )
        with self.engine.begin() as conn:
            if conn.execute(bump).rowcount:
                return
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(QuotaCounter).values(survey_id=survey_id, quota_id=quota_id, count=1))
            return
        except IntegrityError:
            logger.debug("Counter %s/%s created concurrently; retrying as update", survey_id, quota_id)
        with self.engine.begin() as conn:
            conn.execute(bump)


def _parse_completed_at(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable completedAt %r; using server time", value)
        return datetime.now(timezone.utc)


class SqlResponseStore:
    def __init__(self, bind: Optional[Engine] = None) -> None:
        self.engine = bind or default_engine

    def save(
        self,
        survey_id: str,
        status: str,
        respondent: Respondent,
        data: Mapping[str, Any],
        metadata: ResponseMetadata,
    ) -> SurveyResponse:
        row = SurveyResponse(
            survey_id=survey_id,
            status=status,
            respondent_uid=respondent.uid,
            respondent_params_json=json.dumps(respondent.params, ensure_ascii=False),
            data_json=json.dumps(dict(data), ensure_ascii=False),
            duration=metadata.duration,
            page_history_json=json.dumps(metadata.page_history, ensure_ascii=False),
            completed_at=_parse_completed_at(metadata.completed_at),
        )
        with get_session(self.engine) as session:
            session.add(row)
            session.commit()
            session.refresh(row)
        return row

    def exists_completed(self, survey_id: str, respondent_uid: str) -> bool:
        with get_session(self.engine) as session:
            existing = session.exec(
                select(SurveyResponse.id).where(
                    (SurveyResponse.survey_id == survey_id)
                    & (SurveyResponse.respondent_uid == respondent_uid)
                    & (SurveyResponse.status == "completed")
                )
            ).first()
        return existing is not None
