"""
Subtitle resolution: page -> track list -> preferred track -> cues.

AI-generated tracks are often listed before their download URL is ready,
so the track list is polled a few times while the chosen track's URL is empty.
"""

import logging
import time
from typing import Callable

from bilisummary.core.api_client import BiliClient
from bilisummary.core.bilibili_api import BilibiliAPI
from bilisummary.core.captions_parse import parse_subtitle_body, cues_to_text
from bilisummary.core.constants import (
    SUBTITLE_MAX_ATTEMPTS, SUBTITLE_RETRY_DELAY_SEC, PREFERRED_SUBTITLE_LANG,
)
from bilisummary.core.error_codes import SubtitleUnavailable
from bilisummary.core.models import Credential, SubtitleTrack, SubtitleResult
from bilisummary.core.retry import RetryPolicy, RetryExhausted, fixed_delay

logger = logging.getLogger(__name__)


def select_track(tracks: list[SubtitleTrack],
                 preferred_lang: str = PREFERRED_SUBTITLE_LANG) -> SubtitleTrack:
    """First track whose language code contains preferred_lang, else the first track."""
    marker = preferred_lang.lower()
    for track in tracks:
        if marker in track.lan.lower():
            return track
    return tracks[0]


class SubtitleResolver:
    def __init__(self, api: BilibiliAPI, client: BiliClient,
                 max_attempts: int = SUBTITLE_MAX_ATTEMPTS,
                 retry_delay_sec: float = SUBTITLE_RETRY_DELAY_SEC,
                 preferred_lang: str = PREFERRED_SUBTITLE_LANG,
                 sleep: Callable[[float], None] = time.sleep):
        self.api = api
        self.client = client
        self.max_attempts = max_attempts
        self.retry_delay_sec = retry_delay_sec
        self.preferred_lang = preferred_lang
        self.sleep = sleep

    def resolve(self, bvid: str, credential: Credential | None = None) -> SubtitleResult:
        """
        Resolve and download the best subtitle track for the first page.

        Raises SubtitleUnavailable when the video has no pages or tracks,
        when the URL stays empty after every attempt, or when the body is empty.
        Transport and envelope errors propagate unchanged.
        """
        pages = self.api.get_video_pages(bvid, credential)
        if not pages:
            raise SubtitleUnavailable(f"No pages found for {bvid}")
        cid = pages[0].cid

        policy = RetryPolicy(
            max_attempts=self.max_attempts,
            backoff=fixed_delay(self.retry_delay_sec),
            retry_on_result=lambda track: track.full_url is None,
            sleep=self.sleep,
            label=f"[{bvid}] subtitle_url empty",
        )
        try:
            track = policy.call(self._poll_track, bvid, cid, credential)
        except RetryExhausted:
            raise SubtitleUnavailable(
                f"Subtitle URL still empty after {self.max_attempts} attempts (AI subtitle not ready)")

        logger.info("[%s] Downloading subtitle track %s", bvid, track.lan)
        payload = self.client.get_json(track.full_url)
        cues = parse_subtitle_body(payload)
        if not cues:
            raise SubtitleUnavailable(f"Subtitle body empty for {bvid}")

        text = cues_to_text(cues)
        logger.info("[%s] Got subtitle: %d cues, %d chars", bvid, len(cues), len(text))
        return SubtitleResult(language=track.lan, cues=tuple(cues), text=text)

    def _poll_track(self, bvid: str, cid: int, credential: Credential | None) -> SubtitleTrack:
        tracks = self.api.get_subtitle_tracks(bvid, cid, credential)
        if not tracks:
            # propagates through the policy without a retry
            raise SubtitleUnavailable(f"No subtitle tracks for {bvid}")
        return select_track(tracks, self.preferred_lang)
