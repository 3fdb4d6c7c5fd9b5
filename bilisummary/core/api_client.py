"""
Thin HTTP client for the Bilibili web API.
Injects credential cookies, unwraps the {code, message, data} envelope.
No retries at this layer.
"""

import logging
from pathlib import Path

import requests

from bilisummary.core.constants import (
    BILIBILI_API_BASE, BILIBILI_REFERER, USER_AGENT,
    REQUEST_TIMEOUT_SEC, RESOURCE_TIMEOUT_SEC,
)
from bilisummary.core.error_codes import (
    HTTPError, RemoteAPIError, EmptyPayload, InvalidResponse, NetworkError,
)
from bilisummary.core.models import Credential

logger = logging.getLogger(__name__)

_DOWNLOAD_CHUNK_BYTES = 256 * 1024


class BiliClient:
    """Authenticated request/response wrapper. One instance per process."""

    def __init__(self, base_url: str = BILIBILI_API_BASE,
                 session: requests.Session | None = None,
                 timeout: float = REQUEST_TIMEOUT_SEC,
                 resource_timeout: float = RESOURCE_TIMEOUT_SEC):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.resource_timeout = resource_timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": USER_AGENT,
            "Referer": BILIBILI_REFERER,
        })

    def _url(self, path: str) -> str:
        if path.startswith(('http://', 'https://')):
            return path
        return f"{self.base_url}{path}"

    @staticmethod
    def _headers(credential: Credential | None) -> dict:
        if credential is not None and credential.is_valid:
            return {"Cookie": credential.cookie_string}
        return {}

    def _send(self, method: str, url: str, credential: Credential | None,
              timeout: float, **kwargs) -> requests.Response:
        try:
            resp = self.session.request(
                method, url,
                headers=self._headers(credential),
                timeout=timeout,
                **kwargs,
            )
        except requests.exceptions.Timeout:
            raise NetworkError(f"Request timed out: {method} {url}")
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Request failed: {method} {url}: {type(e).__name__}")

        if not 200 <= resp.status_code <= 299:
            raise HTTPError(resp.status_code, resp.text or "")
        return resp

    # ── Envelope requests ─────────────────────────────────────────────

    def request_raw(self, path: str, params: dict | None = None,
                    data: dict | None = None,
                    credential: Credential | None = None,
                    method: str | None = None,
                    timeout: float | None = None) -> dict:
        """Send a request and return the decoded envelope without checking its code."""
        method = method or ("POST" if data is not None else "GET")
        resp = self._send(method, self._url(path), credential,
                          timeout or self.timeout, params=params, data=data)
        try:
            envelope = resp.json()
        except ValueError:
            raise InvalidResponse(f"Response from {path} is not JSON")
        if not isinstance(envelope, dict):
            raise InvalidResponse(f"Unexpected response shape from {path}")
        return envelope

    def request(self, path: str, params: dict | None = None,
                data: dict | None = None,
                credential: Credential | None = None,
                method: str | None = None,
                timeout: float | None = None):
        """Send a request and return the envelope's data field."""
        envelope = self.request_raw(path, params=params, data=data,
                                    credential=credential, method=method,
                                    timeout=timeout)
        code = envelope.get('code', -1)
        if code != 0:
            raise RemoteAPIError(code, envelope.get('message') or '')
        if envelope.get('data') is None:
            raise EmptyPayload(f"No data in response from {path}")
        return envelope['data']

    # ── Raw downloads ─────────────────────────────────────────────────

    def get_json(self, url: str, credential: Credential | None = None):
        """Fetch a plain (non-envelope) JSON document, e.g. a subtitle body."""
        resp = self._send("GET", self._url(url), credential, self.timeout)
        try:
            return resp.json()
        except ValueError:
            raise InvalidResponse(f"Document at {url} is not JSON")

    def download_to(self, url: str, dest: Path,
                    credential: Credential | None = None) -> Path:
        """Stream a resource (audio) to disk using the resource timeout."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        resp = self._send("GET", self._url(url), credential,
                          self.resource_timeout, stream=True)
        try:
            with open(dest, 'wb') as f:
                for chunk in resp.iter_content(chunk_size=_DOWNLOAD_CHUNK_BYTES):
                    if chunk:
                        f.write(chunk)
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Download interrupted: {type(e).__name__}")
        finally:
            resp.close()

        logger.info("Downloaded %s (%d bytes)", dest.name, dest.stat().st_size)
        return dest
