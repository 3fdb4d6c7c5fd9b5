"""
Application configuration manager.
Stores settings in a JSON file under the application support directory.
Secrets may also be supplied through the environment.
"""

import json
import logging
import os
from pathlib import Path

from bilisummary.core.constants import (
    CONFIG_PATH, DEFAULT_OUTPUT_ROOT,
    DEFAULT_API_BASE_URL, DEFAULT_AI_MODEL, DEFAULT_ASR_MODEL,
    DEFAULT_CONCURRENCY, MAX_CONCURRENCY, COURTESY_DELAY_MS,
    SUBTITLE_MAX_ATTEMPTS, SUBTITLE_RETRY_DELAY_SEC, PREFERRED_SUBTITLE_LANG,
    AI_MAX_ATTEMPTS, AI_RETRY_BASE_WAIT_SEC, AI_MAX_TOKENS, MAX_TRANSCRIPT_CHARS,
    REQUEST_TIMEOUT_SEC, RESOURCE_TIMEOUT_SEC, AI_REQUEST_TIMEOUT_SEC,
    ASR_TIMEOUT_SEC, ASR_SEGMENT_SEC,
)
from bilisummary.core.models import Credential

logger = logging.getLogger(__name__)

ENV_API_TOKEN = "BILISUMMARY_API_TOKEN"
ENV_API_BASE_URL = "BILISUMMARY_API_BASE_URL"
ENV_SESSDATA = "BILI_SESSDATA"
ENV_BILI_JCT = "BILI_JCT"
ENV_AC_TIME_VALUE = "BILI_AC_TIME_VALUE"

# Validation bounds: key -> (type, min, max)
_NUMERIC_BOUNDS = {
    'concurrency': (int, 1, MAX_CONCURRENCY),
    'courtesy_delay_ms': (int, 0, 10_000),
    'subtitle_max_attempts': (int, 1, 10),
    'subtitle_retry_delay_sec': (float, 0, 60),
    'ai_max_attempts': (int, 1, 10),
    'ai_retry_base_wait_sec': (float, 0, 60),
    'ai_max_tokens': (int, 256, 65_536),
    'max_transcript_chars': (int, 1_000, 500_000),
    'request_timeout_sec': (float, 1, 600),
    'resource_timeout_sec': (float, 1, 3600),
    'ai_request_timeout_sec': (float, 1, 3600),
    'asr_timeout_sec': (float, 1, 3600),
    'asr_segment_sec': (int, 10, 600),
}

_DEFAULTS = {
    'output_root': str(DEFAULT_OUTPUT_ROOT),
    'api_base_url': DEFAULT_API_BASE_URL,
    'api_auth_token': '',
    'ai_model': DEFAULT_AI_MODEL,
    'asr_model': DEFAULT_ASR_MODEL,
    'concurrency': DEFAULT_CONCURRENCY,
    'courtesy_delay_ms': COURTESY_DELAY_MS,
    'subtitle_max_attempts': SUBTITLE_MAX_ATTEMPTS,
    'subtitle_retry_delay_sec': SUBTITLE_RETRY_DELAY_SEC,
    'preferred_subtitle_lang': PREFERRED_SUBTITLE_LANG,
    'ai_max_attempts': AI_MAX_ATTEMPTS,
    'ai_retry_base_wait_sec': AI_RETRY_BASE_WAIT_SEC,
    'ai_max_tokens': AI_MAX_TOKENS,
    'max_transcript_chars': MAX_TRANSCRIPT_CHARS,
    'request_timeout_sec': REQUEST_TIMEOUT_SEC,
    'resource_timeout_sec': RESOURCE_TIMEOUT_SEC,
    'ai_request_timeout_sec': AI_REQUEST_TIMEOUT_SEC,
    'asr_timeout_sec': ASR_TIMEOUT_SEC,
    'asr_segment_sec': ASR_SEGMENT_SEC,
    'keep_debug_artifacts': False,
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None, environ: dict | None = None):
        self.path = config_path or CONFIG_PATH
        self._environ = os.environ if environ is None else environ
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r', encoding='utf-8') as f:
                    saved = json.load(f)
                self._data.update(saved)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load config: %s", e)

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key in _NUMERIC_BOUNDS:
            kind, low, high = _NUMERIC_BOUNDS[key]
            try:
                value = kind(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r, using default", key, value)
                return _DEFAULTS[key]
            return max(low, min(high, value))

        if key == 'keep_debug_artifacts':
            if isinstance(value, str):
                return value.strip().lower() in ('1', 'true', 'yes', 'on')
            return bool(value)

        if key == 'api_base_url' and isinstance(value, str):
            return value.strip()

        return value

    def as_dict(self, redact: bool = True) -> dict:
        data = dict(self._data)
        if redact and data.get('api_auth_token'):
            data['api_auth_token'] = '***'
        return data

    # ── Typed accessors ───────────────────────────────────────────────

    def _number(self, key: str):
        return self._validate(key, self._data.get(key, _DEFAULTS[key]))

    @property
    def output_root(self) -> Path:
        return Path(self._data.get('output_root', str(DEFAULT_OUTPUT_ROOT))).expanduser()

    @property
    def api_base_url(self) -> str:
        return self._environ.get(ENV_API_BASE_URL) or self._data.get('api_base_url', '')

    @property
    def api_auth_token(self) -> str:
        return self._environ.get(ENV_API_TOKEN) or self._data.get('api_auth_token', '')

    @property
    def ai_model(self) -> str:
        return self._data.get('ai_model') or DEFAULT_AI_MODEL

    @property
    def asr_model(self) -> str:
        return self._data.get('asr_model') or DEFAULT_ASR_MODEL

    @property
    def is_ai_configured(self) -> bool:
        return bool(self.api_base_url and self.api_auth_token)

    @property
    def concurrency(self) -> int:
        return self._number('concurrency')

    @property
    def courtesy_delay_sec(self) -> float:
        return self._number('courtesy_delay_ms') / 1000.0

    @property
    def preferred_subtitle_lang(self) -> str:
        return self._data.get('preferred_subtitle_lang') or PREFERRED_SUBTITLE_LANG

    @property
    def keep_debug_artifacts(self) -> bool:
        return bool(self._data.get('keep_debug_artifacts', False))

    def __getattr__(self, name: str):
        # numeric tunables: config.subtitle_max_attempts, config.asr_timeout_sec, ...
        if name in _NUMERIC_BOUNDS:
            return self._number(name)
        raise AttributeError(name)

    # ── Credential ────────────────────────────────────────────────────

    def credential_from_env(self) -> Credential | None:
        """Build a platform credential from the environment, if present."""
        sessdata = self._environ.get(ENV_SESSDATA, '').strip()
        if not sessdata:
            return None
        return Credential(
            sessdata=sessdata,
            bili_jct=self._environ.get(ENV_BILI_JCT, '').strip(),
            ac_time_value=self._environ.get(ENV_AC_TIME_VALUE, '').strip() or None,
        )
