"""Signed webhook delivery with bounded exponential-backoff retries."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

import httpx

from .config import Settings
from .surveys.schema import CamelModel, WebhookConfig, WebhookPayload


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"

Sleep = Callable[[float], Awaitable[Any]]


class DeliveryResult(CamelModel):
    webhook_id: Optional[str] = None
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    attempts: int = 0


def serialize_payload(payload: Union[WebhookPayload, Mapping[str, Any]]) -> bytes:
    """Canonical JSON body: sorted keys, no insignificant whitespace."""
    if isinstance(payload, WebhookPayload):
        data: Any = payload.to_json_dict()
    else:
        data = dict(payload)
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def backoff_delay_ms(retry_interval: int, attempt: int) -> int:
    """Wait before ``attempt`` (0-based); the first attempt never waits."""
    if attempt <= 0:
        return 0
    return retry_interval * 2 ** (attempt - 1)


def is_retryable_status(status_code: int) -> bool:
    if 400 <= status_code < 500:
        return status_code == 429
    return True


async def _deliver(
    client: httpx.AsyncClient,
    config: WebhookConfig,
    method: str,
    headers: Dict[str, str],
    body: bytes,
    sleep: Sleep,
) -> DeliveryResult:
    last_error: Optional[str] = None
    last_status: Optional[int] = None
    total = config.retry_count + 1

    for attempt in range(total):
        if attempt > 0:
            delay = backoff_delay_ms(config.retry_interval, attempt)
            logger.debug("Webhook %s: retry %d/%d in %d ms", config.url, attempt, config.retry_count, delay)
            await sleep(delay / 1000)
        try:
            resp = await client.request(method, config.url, headers=headers, content=body)
        except Exception as e:  # noqa: BLE001
            last_status = None
            last_error = str(e) or e.__class__.__name__
            logger.warning("Webhook %s: attempt %d failed: %s", config.url, attempt + 1, last_error)
            continue

        if resp.is_success:
            return DeliveryResult(
                webhook_id=config.id or None,
                success=True,
                status_code=resp.status_code,
                attempts=attempt + 1,
            )

        last_status = resp.status_code
        last_error = f"HTTP {resp.status_code}: {resp.reason_phrase}"
        logger.warning("Webhook %s: attempt %d got %s", config.url, attempt + 1, last_error)
        if not is_retryable_status(resp.status_code):
            return DeliveryResult(
                webhook_id=config.id or None,
                success=False,
                status_code=resp.status_code,
                error=last_error,
                attempts=attempt + 1,
            )

    return DeliveryResult(
        webhook_id=config.id or None,
        success=False,
        status_code=last_status,
        error=last_error,
        attempts=total,
    )


def webhook_client(
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Client for webhook delivery; redirects are followed to the final endpoint."""
    if timeout is None:
        timeout = Settings().webhook_timeout_seconds
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        transport=transport,
    )


async def send_webhook(
    config: WebhookConfig,
    payload: Union[WebhookPayload, Mapping[str, Any]],
    *,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
) -> DeliveryResult:
    """Deliver one payload to one endpoint.

    The body and its signature are computed once and reused on every attempt.
    Returns on the first 2xx, or immediately on a 4xx other than 429;
    otherwise retries ``retry_count`` more times, waiting
    ``retry_interval * 2**(k-1)`` ms before retry ``k``.
    """
    body = serialize_payload(payload)
    headers: Dict[str, str] = {"Content-Type": "application/json", **config.headers}
    if config.secret:
        headers[SIGNATURE_HEADER] = sign_payload(body, config.secret)
    method = (config.method or "POST").upper()

    if client is not None:
        return await _deliver(client, config, method, headers, body, sleep)
    async with webhook_client() as own_client:
        return await _deliver(own_client, config, method, headers, body, sleep)


async def dispatch_webhooks(
    configs: Sequence[WebhookConfig],
    payload: Union[WebhookPayload, Mapping[str, Any]],
    *,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
) -> List[DeliveryResult]:
    """Send to every enabled webhook concurrently; one outcome per webhook."""
    enabled = [c for c in configs if c.enabled]
    outcomes = await asyncio.gather(
        *(send_webhook(c, payload, client=client, sleep=sleep) for c in enabled),
        return_exceptions=True,
    )
    results: List[DeliveryResult] = []
    for config, outcome in zip(enabled, outcomes):
        if isinstance(outcome, BaseException):
            logger.error("Webhook %s: delivery crashed: %r", config.url, outcome)
            outcome = DeliveryResult(webhook_id=config.id or None, success=False, error=str(outcome) or "Failed")
        results.append(outcome)
    return results
