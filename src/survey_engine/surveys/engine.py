from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from pydantic import Field

from ..config import Settings
from ..stores import CounterStore, ResponseStore
from ..webhooks import DeliveryResult, Sleep, dispatch_webhooks
from .quotas import find_exceeded_quotas, get_matching_quota_ids
from .schema import (
    AnswerSet,
    CamelModel,
    Respondent,
    RespondentSettings,
    ResponseMetadata,
    Survey,
    SurveySettings,
    WebhookPayload,
)


logger = logging.getLogger(__name__)


class SurveyNotFoundError(FileNotFoundError):
    pass


class SurveyNotPublishedError(ValueError):
    pass


def load_survey(survey_id: str, directory: Optional[Union[str, Path]] = None) -> Survey:
    surveys_dir = Path(directory) if directory is not None else Settings().surveys_dir
    path = surveys_dir / f"{survey_id}.json"
    # ids come from URLs; never read outside the definitions directory
    if path.resolve().parent != surveys_dir.resolve() or not path.exists():
        raise SurveyNotFoundError(f"Survey file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    return Survey.model_validate(data)


def ensure_published(survey: Survey) -> None:
    if survey.status != "published":
        raise SurveyNotPublishedError(f"Survey {survey.id} is not published")


# ---------------------------------------------------------------------------
# Respondent identification and redirects
# ---------------------------------------------------------------------------


def missing_required_params(settings: RespondentSettings, params: Mapping[str, str]) -> List[str]:
    return [p for p in settings.required_params if p and not params.get(p)]


def resolve_respondent_uid(settings: RespondentSettings, params: Mapping[str, str]) -> Optional[str]:
    key = settings.identifier_param or "uid"
    return params.get(key) or None


def build_redirect_url(url: Optional[str], params: Mapping[str, str], pass_params: bool) -> Optional[str]:
    """Append respondent URL params to ``url`` (overwriting same-named ones)."""
    if not url:
        return None
    if not pass_params or not params:
        return url
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(params)
    return urlunsplit(parts._replace(query=urlencode(query)))


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class Submission(CamelModel):
    data: AnswerSet = Field(default_factory=dict)
    respondent: Respondent = Field(default_factory=Respondent)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


class SubmissionResult(CamelModel):
    success: bool
    status: Literal["completed", "disqualified", "closed", "duplicate", "missing_params"]
    reason: Optional[str] = None
    quota_id: Optional[str] = None
    missing_params: Optional[List[str]] = None
    response_id: Optional[int] = None
    redirect_url: Optional[str] = None
    webhooks: List[DeliveryResult] = Field(default_factory=list)


def _redirect(settings: SurveySettings, url: Optional[str], respondent: Respondent) -> Optional[str]:
    return build_redirect_url(url, respondent.params, settings.redirect.pass_params)


def build_payload(survey: Survey, submission: Submission, event: str = "response.completed") -> WebhookPayload:
    meta = submission.metadata
    return WebhookPayload(
        event=event,
        survey_id=survey.id,
        respondent=submission.respondent,
        data=submission.data,
        metadata=ResponseMetadata(
            completed_at=meta.completed_at or datetime.now(timezone.utc).isoformat(),
            duration=meta.duration,
            page_history=meta.page_history,
        ),
    )


async def submit_response(
    survey: Survey,
    submission: Submission,
    *,
    counters: CounterStore,
    responses: ResponseStore,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
) -> SubmissionResult:
    """Admit, store and relay one completed response.

    Submissions lacking a required respondent URL param are rejected before
    anything else and never stored.

    Quota admission uses a counter snapshot taken before any increment; the
    first exceeded quota decides: ``disqualify`` stores the response as
    disqualified, ``close`` rejects it without storing. Accepted responses
    bump every matching quota counter once and are fanned out to the enabled
    webhooks, whose individual outcomes are returned as-is.
    """
    ensure_published(survey)
    settings = survey.settings
    respondent = submission.respondent

    missing = missing_required_params(settings.respondent, respondent.params)
    if missing:
        logger.info("Survey %s: response rejected, missing params %s", survey.id, ", ".join(missing))
        return SubmissionResult(
            success=False,
            status="missing_params",
            reason="missing_params",
            missing_params=missing,
        )

    if respondent.uid is None:
        uid = resolve_respondent_uid(settings.respondent, respondent.params)
        if uid:
            respondent = respondent.model_copy(update={"uid": uid})
            submission = submission.model_copy(update={"respondent": respondent})

    if settings.respondent.prevent_duplicate and respondent.uid:
        if responses.exists_completed(survey.id, respondent.uid):
            logger.info("Survey %s: duplicate response from %s rejected", survey.id, respondent.uid)
            return SubmissionResult(success=False, status="duplicate", reason="duplicate")

    data: Dict[str, Any] = dict(submission.data)

    if survey.quotas:
        snapshot = counters.snapshot(survey.id)
        exceeded = find_exceeded_quotas(survey.quotas, data, snapshot)
        if exceeded:
            quota = exceeded[0]
            if quota.action == "disqualify":
                row = responses.save(survey.id, "disqualified", respondent, data, submission.metadata)
                logger.info("Survey %s: response disqualified by quota %s", survey.id, quota.id)
                return SubmissionResult(
                    success=False,
                    status="disqualified",
                    reason="quota_exceeded",
                    quota_id=quota.id,
                    response_id=row.id,
                    redirect_url=_redirect(settings, settings.redirect.disqualify_url, respondent),
                )
            logger.info("Survey %s: quota %s full, response rejected", survey.id, quota.id)
            return SubmissionResult(
                success=False,
                status="closed",
                reason="quota_full",
                quota_id=quota.id,
                redirect_url=_redirect(settings, settings.redirect.quota_full_url, respondent),
            )

        for quota_id in get_matching_quota_ids(survey.quotas, data):
            try:
                counters.increment(survey.id, quota_id)
            except Exception:  # noqa: BLE001
                logger.exception("Survey %s: failed to increment quota counter %s", survey.id, quota_id)

    row = responses.save(survey.id, "completed", respondent, data, submission.metadata)
    logger.info("Survey %s: response %s stored", survey.id, row.id)

    deliveries: List[DeliveryResult] = []
    if survey.webhooks:
        payload = build_payload(survey, submission)
        deliveries = await dispatch_webhooks(survey.webhooks, payload, client=client, sleep=sleep)

    return SubmissionResult(
        success=True,
        status="completed",
        response_id=row.id,
        redirect_url=_redirect(settings, settings.redirect.completion_url, respondent),
        webhooks=deliveries,
    )
