from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaCounter(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("survey_id", "quota_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    survey_id: str = Field(index=True)
    quota_id: str
    count: int = Field(default=0, nullable=False)


class SurveyResponse(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)
    survey_id: str = Field(index=True)
    status: str = Field(default="completed", index=True)  # completed | disqualified
    respondent_uid: Optional[str] = Field(default=None, index=True)
    # JSON blobs; the engine only ever reads them back whole
    respondent_params_json: str = "{}"
    data_json: str = "{}"
    duration: float = 0
    page_history_json: str = "[]"
    completed_at: datetime = Field(default_factory=_utcnow, nullable=False)
