"""
LLM summarization through an Anthropic-compatible /v1/messages endpoint.
Includes exponential backoff for rate-limit (429) responses.
"""

import logging
import time
from typing import Callable

import requests

from bilisummary.core.constants import (
    DEFAULT_AI_MODEL, AI_MAX_TOKENS, AI_MAX_ATTEMPTS, AI_RETRY_BASE_WAIT_SEC,
    AI_REQUEST_TIMEOUT_SEC, MODELS_TIMEOUT_SEC, MAX_TRANSCRIPT_CHARS,
    SUMMARIZE_PROMPT, EMPTY_TRANSCRIPT_SUMMARY,
)
from bilisummary.core.error_codes import (
    ConfigurationMissing, HTTPError, InvalidResponse, NetworkError,
    RateLimited, RateLimitExhausted,
)
from bilisummary.core.models import SummaryResult, AIModel
from bilisummary.core.retry import RetryPolicy, RetryExhausted, exponential_backoff

logger = logging.getLogger(__name__)


def messages_endpoint(base_url: str) -> str:
    return f"{base_url}v1/messages" if base_url.endswith('/') else f"{base_url}/v1/messages"


def model_list_candidates(base_url: str) -> list[str]:
    base = base_url.strip().strip('/')
    candidates = []
    if base.endswith('/v1'):
        candidates.append(f"{base}/models")
    candidates.append(f"{base}/v1/models")
    candidates.append(f"{base}/models")
    return list(dict.fromkeys(candidates))


def build_prompt(title: str, transcript: str, max_chars: int = MAX_TRANSCRIPT_CHARS) -> str:
    return (SUMMARIZE_PROMPT
            .replace('{title}', title)
            .replace('{subtitle}', transcript[:max_chars]))


class Summarizer:
    def __init__(self, base_url: str, auth_token: str,
                 model: str = DEFAULT_AI_MODEL,
                 max_tokens: int = AI_MAX_TOKENS,
                 max_attempts: int = AI_MAX_ATTEMPTS,
                 retry_base_wait_sec: float = AI_RETRY_BASE_WAIT_SEC,
                 timeout: float = AI_REQUEST_TIMEOUT_SEC,
                 max_transcript_chars: int = MAX_TRANSCRIPT_CHARS,
                 session: requests.Session | None = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.base_url = base_url or ""
        self.auth_token = auth_token or ""
        self.model = model
        self.max_tokens = max_tokens
        self.max_attempts = max_attempts
        self.retry_base_wait_sec = retry_base_wait_sec
        self.timeout = timeout
        self.max_transcript_chars = max_transcript_chars
        self.session = session or requests.Session()
        self.sleep = sleep

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.auth_token)

    def _headers(self) -> dict:
        # Some providers read x-api-key instead of Authorization
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.auth_token}",
            "x-api-key": self.auth_token,
        }

    def summarize(self, transcript: str, title: str) -> SummaryResult:
        """
        Summarize a transcript. Retries on 429 with waits of base * 2^n;
        every other failure propagates on the first occurrence.
        """
        if not transcript:
            return SummaryResult(text=EMPTY_TRANSCRIPT_SUMMARY, duration_sec=0.0)
        if not self.is_configured:
            raise ConfigurationMissing("AI API base URL or auth token not configured")

        body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "user", "content": build_prompt(title, transcript, self.max_transcript_chars)},
            ],
        }

        policy = RetryPolicy(
            max_attempts=self.max_attempts,
            backoff=exponential_backoff(self.retry_base_wait_sec),
            retry_on_exception=lambda e: isinstance(e, RateLimited),
            sleep=self.sleep,
            label="AI rate limited (429)",
        )
        try:
            return policy.call(self._timed_request, body)
        except RetryExhausted:
            raise RateLimitExhausted(self.max_attempts)

    def _timed_request(self, body: dict) -> SummaryResult:
        start = time.monotonic()
        text = self._request(body)
        return SummaryResult(text=text, duration_sec=time.monotonic() - start)

    def _request(self, body: dict) -> str:
        try:
            resp = self.session.post(
                messages_endpoint(self.base_url),
                headers=self._headers(),
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise NetworkError("AI request timed out")
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"AI request failed: {type(e).__name__}")

        if resp.status_code == 429:
            raise RateLimited()
        if not 200 <= resp.status_code <= 299:
            raise HTTPError(resp.status_code, resp.text or "")

        try:
            result = resp.json()
        except ValueError:
            raise InvalidResponse("AI response is not JSON")

        content = result.get('content') if isinstance(result, dict) else None
        for block in content or []:
            if isinstance(block, dict) and isinstance(block.get('text'), str):
                return block['text']
        raise InvalidResponse("AI response has no text content block")

    # ── Model discovery ───────────────────────────────────────────────

    def list_models(self) -> list[AIModel]:
        """
        Query the provider's model list, trying the common path layouts.
        404/405 and unreachable candidates move on to the next layout.
        """
        if not self.is_configured:
            raise ConfigurationMissing("AI API base URL or auth token not configured")

        headers = self._headers()
        del headers["Content-Type"]

        for url in model_list_candidates(self.base_url):
            try:
                resp = self.session.get(url, headers=headers, timeout=MODELS_TIMEOUT_SEC)
            except requests.exceptions.RequestException as e:
                logger.debug("Models API %s unreachable: %s", url, type(e).__name__)
                continue

            if resp.status_code in (404, 405):
                continue
            if not 200 <= resp.status_code <= 299:
                logger.warning("Models API %s returned %d", url, resp.status_code)
                raise HTTPError(resp.status_code, resp.text or "")

            try:
                payload = resp.json()
            except ValueError:
                continue

            entries = payload.get('data') if isinstance(payload, dict) else None
            models = sorted(
                (AIModel(id=m['id'], owned_by=m.get('owned_by') or '')
                 for m in entries or [] if isinstance(m, dict) and isinstance(m.get('id'), str)),
                key=lambda m: m.id,
            )
            if models:
                logger.info("Found %d models from %s", len(models), url)
                return models

        return []
