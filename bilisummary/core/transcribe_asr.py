"""
Speech-recognition fallback for videos without subtitles.
Downloads the audio stream, cuts it into fixed segments and sends each one
to an OpenAI-style /v1/audio/transcriptions endpoint.
"""

import logging
import uuid
from pathlib import Path

import requests

from bilisummary.core.api_client import BiliClient
from bilisummary.core.bilibili_api import BilibiliAPI
from bilisummary.core.chunking_timebased import (
    get_audio_duration, create_segment_manifest, split_audio_into_segments,
)
from bilisummary.core.cleanup import cleanup_job_artifacts
from bilisummary.core.constants import (
    JOBS_CACHE_DIR, ASR_SEGMENT_SEC, ASR_TIMEOUT_SEC, DEFAULT_ASR_MODEL,
)
from bilisummary.core.download_audio import resolve_audio_url, download_audio
from bilisummary.core.error_codes import (
    PipelineError, ConfigurationMissing, TranscriptionFailed,
)
from bilisummary.core.models import Credential

logger = logging.getLogger(__name__)


def asr_endpoint(base_url: str) -> str:
    """Base URL (with or without a trailing /v1) -> transcription endpoint."""
    base = base_url.strip().strip('/')
    if base.endswith('/v1'):
        base = base[:-3]
    return f"{base}/v1/audio/transcriptions"


class ASRClient:
    """Transcribes one audio file per request."""

    def __init__(self, base_url: str, auth_token: str,
                 model: str = DEFAULT_ASR_MODEL,
                 timeout: float = ASR_TIMEOUT_SEC,
                 session: requests.Session | None = None):
        self.base_url = base_url
        self.auth_token = auth_token
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def transcribe_file(self, audio_path: Path) -> str:
        if not self.base_url or not self.auth_token:
            raise ConfigurationMissing("ASR endpoint or auth token not configured")

        try:
            with open(audio_path, 'rb') as f:
                resp = self.session.post(
                    asr_endpoint(self.base_url),
                    headers={"Authorization": f"Bearer {self.auth_token}"},
                    files={"file": ("audio.m4a", f, "audio/m4a")},
                    data={"model": self.model},
                    timeout=self.timeout,
                )
        except requests.exceptions.Timeout:
            raise TranscriptionFailed("ASR request timed out")
        except requests.exceptions.RequestException as e:
            raise TranscriptionFailed(f"ASR request failed: {type(e).__name__}")

        if not 200 <= resp.status_code <= 299:
            # Never log the auth token; body is truncated
            raise TranscriptionFailed(
                f"ASR returned {resp.status_code}: {(resp.text or '')[:200]}")

        try:
            result = resp.json()
        except ValueError:
            raise TranscriptionFailed("Failed to parse ASR response JSON")

        return str(result.get('text') or '').strip() if isinstance(result, dict) else ""


class AudioTranscriber:
    """Audio download -> segmentation -> per-segment ASR -> joined transcript."""

    def __init__(self, api: BilibiliAPI, client: BiliClient, asr: ASRClient,
                 workspace_root: Path = JOBS_CACHE_DIR,
                 segment_sec: int = ASR_SEGMENT_SEC,
                 keep_debug: bool = False):
        self.api = api
        self.client = client
        self.asr = asr
        self.workspace_root = workspace_root
        self.segment_sec = segment_sec
        self.keep_debug = keep_debug

    def transcribe(self, bvid: str, credential: Credential | None = None) -> str:
        """
        Returns the newline-joined text of all non-empty segments.
        Every failure surfaces as TranscriptionFailed; the audio workspace
        is removed either way.
        """
        workspace = self.workspace_root / f"{bvid}-{uuid.uuid4().hex[:8]}"
        try:
            return self._transcribe(bvid, credential, workspace)
        except TranscriptionFailed:
            raise
        except PipelineError as e:
            raise TranscriptionFailed(e.message) from e
        except OSError as e:
            raise TranscriptionFailed(f"Audio workspace error: {e}") from e
        except Exception as e:
            logger.error("[%s] Unexpected transcription error: %s", bvid, e, exc_info=True)
            raise TranscriptionFailed(f"{type(e).__name__}: {e}") from e
        finally:
            cleanup_job_artifacts(workspace, keep_debug=self.keep_debug)

    def _transcribe(self, bvid: str, credential: Credential | None, workspace: Path) -> str:
        audio_url = resolve_audio_url(self.api, bvid, credential)
        source = download_audio(self.client, audio_url, workspace, credential)

        duration = get_audio_duration(source)
        manifest = create_segment_manifest(duration, self.segment_sec)
        if not manifest:
            raise TranscriptionFailed("Audio has zero duration")
        segments = split_audio_into_segments(source, workspace / "segments", manifest)

        transcripts = []
        for idx, segment in enumerate(segments):
            text = self.asr.transcribe_file(segment)
            logger.debug("[%s] Segment %d/%d: %d chars", bvid, idx + 1, len(segments), len(text))
            if self.keep_debug:
                out = workspace / "transcripts" / f"seg_{idx:03d}.txt"
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_text(text, encoding='utf-8')
            if text:
                transcripts.append(text)

        transcript = '\n'.join(transcripts)
        if not transcript:
            raise TranscriptionFailed("Speech recognition produced no text")

        logger.info("[%s] ASR transcript: %d segments, %d chars", bvid, len(segments), len(transcript))
        return transcript
