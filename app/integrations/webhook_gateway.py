"""
Outbound webhook gateway.

All outbound HTTP calls made by notification hooks go through this class.
Direct `requests` calls in services or blueprints are not allowed.

  - JSON body serialised once; the exact bytes sent are the bytes signed
  - HMAC-SHA256 signature in X-Webhook-Signature when a secret is given
  - Retry: one extra attempt on 5xx / network errors, short backoff
  - Never raises: every call returns a GatewayResult

Testability: pass a fake `session` to WebhookGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
N8N_API_KEY_HEADER = "X-N8N-API-KEY"

_DEFAULT_TIMEOUT = 10
_RETRY_MAX = 1
_RETRY_BACKOFF_SECONDS = [1]


class GatewayResult:
    """Structured return value from WebhookGateway calls.

    Attributes:
        ok:           True if the call succeeded (HTTP 2xx + no exception).
        status_code:  HTTP status code (None if network-level failure).
        error:        Human-readable error message or None.
        duration_ms:  Round-trip latency of the last attempt in milliseconds.
        attempts:     Number of HTTP attempts made.
        url:          Target URL.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        error: str | None,
        duration_ms: int,
        attempts: int = 1,
        url: str | None = None,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.error = error
        self.duration_ms = duration_ms
        self.attempts = attempts
        self.url = url

    def __repr__(self) -> str:
        state = "ok" if self.ok else f"error={self.error!r}"
        return f"<GatewayResult {self.url} status={self.status_code} {state}>"


def sign_payload(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of *body* keyed with *secret*."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def serialise(payload: Any) -> bytes:
    return json.dumps(payload, sort_keys=True, default=str).encode("utf-8")


class WebhookGateway:
    """Signed JSON POSTs to webhook receivers and automation endpoints.

    Usage:
        from app.integrations.webhook_gateway import WebhookGateway
        result = WebhookGateway().post_event(url, payload, secret="s3cret")
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        retries: int = _RETRY_MAX,
        backoff: list[float] | None = None,
    ) -> None:
        self._session: requests.Session | None = session
        self.timeout = timeout
        self.retries = retries
        self.backoff = list(_RETRY_BACKOFF_SECONDS if backoff is None else backoff)

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Core dispatcher ──────────────────────────────────────────────────────

    def _post(self, url: str, body: bytes, headers: dict) -> GatewayResult:
        last_error = "Unknown error"
        last_status: int | None = None
        duration_ms = 0
        attempts = 0

        for attempt in range(self.retries + 1):
            attempts = attempt + 1
            try:
                t0 = time.perf_counter()
                resp = self.session.post(url, data=body, headers=headers, timeout=self.timeout)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.ok:
                    return GatewayResult(True, resp.status_code, None, duration_ms, attempts, url)

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                logger.warning(
                    "Webhook POST failed attempt=%d/%d status=%d url=%s",
                    attempts, self.retries + 1, resp.status_code, url,
                )
                if resp.status_code < 500:
                    # Receiver rejected the event; resending the same body will not help
                    break

            except requests.Timeout:
                duration_ms = int(self.timeout * 1000)
                last_error = f"Request timed out after {self.timeout}s"
                logger.warning("Webhook POST timed out attempt=%d/%d url=%s",
                               attempts, self.retries + 1, url)

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                logger.warning("Webhook network error attempt=%d/%d url=%s error=%s",
                               attempts, self.retries + 1, url, last_error)

            if attempt < self.retries:
                sleep_s = self.backoff[min(attempt, len(self.backoff) - 1)] if self.backoff else 0
                if sleep_s:
                    time.sleep(sleep_s)

        return GatewayResult(False, last_status, last_error, duration_ms, attempts, url)

    # ── Operations ───────────────────────────────────────────────────────────

    def post_event(
        self,
        url: str,
        payload: dict,
        *,
        secret: str | None = None,
        event_type: str | None = None,
    ) -> GatewayResult:
        """POST a JSON event, signed when *secret* is set."""
        body = serialise(payload)
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if event_type:
            headers["X-Webhook-Event"] = event_type
        if secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, secret)
        return self._post(url, body, headers)

    def trigger_workflow(self, url: str, payload: dict, *, api_key: str) -> GatewayResult:
        """POST to an n8n-style automation endpoint authenticated by API key."""
        if not api_key:
            return GatewayResult(False, None, "Automation integration not configured", 0, 0, url)
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            N8N_API_KEY_HEADER: api_key,
        }
        return self._post(url, serialise(payload), headers)
