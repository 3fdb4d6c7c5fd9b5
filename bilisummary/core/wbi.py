"""
WBI request signing.

Signed endpoints expect two extra query fields: wts (unix seconds) and
w_rid, the MD5 of the sorted query string followed by a 32-character mixin
key. The mixin key is derived from two key fragments published by the nav
endpoint and is cached for an hour.
"""

import hashlib
import logging
import posixpath
import threading
import time
from typing import Callable
from urllib.parse import quote, urlparse

from bilisummary.core.api_client import BiliClient
from bilisummary.core.constants import (
    NAV_PATH, MIXIN_KEY_ENC_TAB, MIXIN_KEY_LENGTH, MIXIN_KEY_TTL_SEC,
    SIGN_TIMESTAMP_FIELD, SIGN_SIGNATURE_FIELD, SIGN_STRIP_CHARS, NOT_LOGGED_IN_CODE,
)
from bilisummary.core.error_codes import PipelineError, SigningUnavailable
from bilisummary.core.models import Credential

logger = logging.getLogger(__name__)

_STRIP_TABLE = str.maketrans('', '', SIGN_STRIP_CHARS)


def extract_key(url: str) -> str:
    """"https://i0.hdslb.com/bfs/wbi/7cd0...077c.png" -> "7cd0...077c"."""
    if not url:
        return ""
    filename = posixpath.basename(urlparse(url).path)
    return posixpath.splitext(filename)[0]


def mixin_key_from(img_key: str, sub_key: str) -> str:
    """Select 32 characters of img_key + sub_key in permutation-table order."""
    combined = img_key + sub_key
    try:
        return ''.join(combined[i] for i in MIXIN_KEY_ENC_TAB[:MIXIN_KEY_LENGTH])
    except IndexError:
        raise SigningUnavailable(
            f"Key fragments too short ({len(combined)} chars) to build mixin key")


def clean_value(value) -> str:
    return quote(str(value).translate(_STRIP_TABLE), safe='')


def sign_params(params: dict, mixin_key: str, wts: int) -> dict:
    """
    Pure signing step. Returns a new dict holding params plus wts and w_rid.
    Values are stripped of !'()* before hashing; keys are left as they are.
    """
    signed = {k: str(v) for k, v in params.items()}
    signed[SIGN_TIMESTAMP_FIELD] = str(int(wts))

    ordered = sorted(signed.items(), key=lambda kv: kv[0].encode('utf-8'))
    query = '&'.join(f"{k}={clean_value(v)}" for k, v in ordered)

    signed[SIGN_SIGNATURE_FIELD] = hashlib.md5(
        (query + mixin_key).encode('utf-8')).hexdigest()
    return signed


class WbiSigner:
    """
    Long-lived signer holding the process-wide mixin key cache.
    The cache lock is held across the nav fetch so concurrent callers
    during a miss wait for one fetch instead of issuing their own.
    """

    def __init__(self, client: BiliClient,
                 ttl_sec: float = MIXIN_KEY_TTL_SEC,
                 clock: Callable[[], float] = time.time):
        self.client = client
        self.ttl_sec = ttl_sec
        self.clock = clock
        self._lock = threading.Lock()
        self._mixin_key: str | None = None
        self._fetched_at: float = 0.0

    def sign(self, params: dict, credential: Credential | None = None) -> dict:
        mixin_key = self.get_mixin_key(credential)
        return sign_params(params, mixin_key, int(self.clock()))

    def get_mixin_key(self, credential: Credential | None = None) -> str:
        with self._lock:
            if self._mixin_key and self.clock() - self._fetched_at < self.ttl_sec:
                return self._mixin_key

            img_key, sub_key = self._fetch_key_fragments(credential)
            self._mixin_key = mixin_key_from(img_key, sub_key)
            self._fetched_at = self.clock()
            logger.info("Refreshed WBI mixin key")
            return self._mixin_key

    def _fetch_key_fragments(self, credential: Credential | None) -> tuple[str, str]:
        try:
            envelope = self.client.request_raw(NAV_PATH, credential=credential)
        except PipelineError as e:
            raise SigningUnavailable(f"Failed to fetch signing keys: {e.message}") from e

        # anonymous callers get NOT_LOGGED_IN_CODE; the key fragments are still there
        if envelope.get('code') == NOT_LOGGED_IN_CODE:
            logger.debug("Nav fetched anonymously")
        data = envelope.get('data') or {}
        wbi_img = data.get('wbi_img') or {}
        img_key = extract_key(wbi_img.get('img_url', ''))
        sub_key = extract_key(wbi_img.get('sub_url', ''))
        if not img_key or not sub_key:
            raise SigningUnavailable(
                f"Signing keys missing from nav response (code={envelope.get('code')})")
        return img_key, sub_key
