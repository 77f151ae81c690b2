from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, HTTPException, Query, status
from pydantic import BaseModel, Field, ValidationError

from .computed import ComputedVariableClient, run_computed_variables
from .config import Settings
from .db import init_db
from .stores import CounterStore, ResponseStore, SqlCounterStore, SqlResponseStore
from .surveys.engine import (
    Submission,
    SurveyNotFoundError,
    SurveyNotPublishedError,
    ensure_published,
    load_survey,
    submit_response,
)
from .surveys.schema import AnswerSet, Respondent, ResponseMetadata, Survey, WebhookConfig, WebhookPayload
from .webhooks import send_webhook, webhook_client


class ComputedRequest(BaseModel):
    page_id: str = Field(alias="pageId")
    answers: AnswerSet = Field(default_factory=dict)


class WebhookTestRequest(BaseModel):
    url: str
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    secret: str = ""


def sample_payload() -> WebhookPayload:
    return WebhookPayload(
        event="response.completed",
        survey_id="test-survey-id",
        respondent=Respondent(uid="test-user-001", params={"uid": "test-user-001", "source": "email"}),
        data={"test-q1": "Sample answer", "test-q2": ["Option A", "Option B"], "test-q3": 5},
        metadata=ResponseMetadata(
            completed_at="2024-01-01T00:00:00Z",
            duration=120,
            page_history=["page1", "page2"],
        ),
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    counters: Optional[CounterStore] = None,
    responses: Optional[ResponseStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the respondent-facing API.

    Stores default to the SQL implementations on the configured database;
    ``transport`` replaces the network for webhook and computed-variable calls.
    """
    settings = settings or Settings()
    uses_default_db = counters is None or responses is None
    counters = counters or SqlCounterStore()
    responses = responses or SqlResponseStore()
    surveys_dir: Path = settings.surveys_dir
    computed_client = ComputedVariableClient(transport=transport)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if uses_default_db:
            init_db()
        yield

    app = FastAPI(title="Survey Engine", version="0.1.0", lifespan=lifespan)

    def _published_survey(survey_id: str) -> Survey:
        try:
            survey = load_survey(survey_id, surveys_dir)
        except SurveyNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Survey definition error: {e!s}")
        try:
            ensure_published(survey)
        except SurveyNotPublishedError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Survey is not published")
        return survey

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/surveys/{survey_id}")
    def get_survey(survey_id: str) -> Dict[str, Any]:
        survey = _published_survey(survey_id)
        data = survey.to_json_dict()
        # endpoint URLs and secrets stay server-side
        data.pop("computedVariables", None)
        data.pop("webhooks", None)
        return data

    @app.post("/surveys/{survey_id}/computed")
    async def computed(survey_id: str, body: ComputedRequest) -> Dict[str, Any]:
        survey = _published_survey(survey_id)
        variables = await run_computed_variables(survey, body.page_id, body.answers, computed_client)
        return {"variables": variables}

    @app.get("/surveys/{survey_id}/responses/check-duplicate")
    def check_duplicate(survey_id: str, uid: Optional[str] = Query(default=None)) -> Dict[str, bool]:
        if not uid:
            return {"exists": False}
        return {"exists": responses.exists_completed(survey_id, uid)}

    @app.post("/surveys/{survey_id}/responses")
    async def submit(survey_id: str, body: Submission) -> Dict[str, Any]:
        survey = _published_survey(survey_id)
        async with webhook_client(settings.webhook_timeout_seconds, transport) as client:
            result = await submit_response(
                survey,
                body,
                counters=counters,
                responses=responses,
                client=client,
            )
        return result.to_json_dict()

    @app.post("/webhooks/test")
    async def webhook_test(body: WebhookTestRequest) -> Dict[str, Any]:
        config = WebhookConfig(
            url=body.url,
            method=body.method or "POST",
            headers=body.headers,
            secret=body.secret,
            retry_count=0,
            retry_interval=0,
        )
        async with webhook_client(settings.webhook_timeout_seconds, transport) as client:
            result = await send_webhook(config, sample_payload(), client=client)
        return result.to_json_dict()

    return app


async def run_api() -> None:
    settings = Settings()
    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    await server.serve()
