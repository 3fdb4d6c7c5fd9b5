"""
Audio download for the speech-recognition fallback.
"""

import logging
from pathlib import Path

from bilisummary.core.api_client import BiliClient
from bilisummary.core.audio_select import select_audio_stream
from bilisummary.core.bilibili_api import BilibiliAPI
from bilisummary.core.error_codes import TranscriptionFailed
from bilisummary.core.models import Credential

logger = logging.getLogger(__name__)


def resolve_audio_url(api: BilibiliAPI, bvid: str,
                      credential: Credential | None = None) -> str:
    """Direct audio stream URL for the first page of a video."""
    pages = api.get_video_pages(bvid, credential)
    if not pages:
        raise TranscriptionFailed(f"No pages found for {bvid}")

    play_info = api.get_play_url(bvid, pages[0].cid, credential)
    stream = select_audio_stream(play_info)
    if stream is None:
        raise TranscriptionFailed(f"No audio stream available for {bvid}")
    return stream['url']


def download_audio(client: BiliClient, audio_url: str, output_dir: Path,
                   credential: Credential | None = None) -> Path:
    """
    Download the audio-only stream into output_dir/source/.
    Returns path to the downloaded file.
    """
    dest = output_dir / "source" / "source.m4a"
    client.download_to(audio_url, dest, credential)

    if not dest.exists() or dest.stat().st_size == 0:
        raise TranscriptionFailed("Downloaded audio file is empty")
    return dest
